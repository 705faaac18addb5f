"""Jinja2 rendering of commands and files against a host.

Templates see a single variable, ``host``, holding the host as a
dictionary::

    echo "{{ host.id }} says {{ host.vars.msg }}"

Undefined variables are errors, so a typo fails in the prepare phase
instead of sending a half-rendered command to every host.
"""

import jinja2

from .exceptions import TemplateError
from .types import Host

_environment = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


def render(template_text: str, host: Host) -> str:
    """Render a template with the host as context.

    Raises:
        TemplateError: If the template is invalid or uses an undefined variable
    """
    try:
        template = _environment.from_string(template_text)
        return template.render(host=host.to_dict())
    except jinja2.TemplateError as e:
        raise TemplateError(f"Failed to render template for host {host.id}: {e}") from e
