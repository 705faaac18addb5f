"""Tasks that can be run against the hosts of an inventory.

Every task implements the same two-phase contract (see sweep.tasks.base)
and is dispatched by the executor through it.
"""

from sweep.tasks.base import RemoteTask, Task
from sweep.tasks.download import DownloadTask
from sweep.tasks.exec import ExecTask
from sweep.tasks.info import InfoTask
from sweep.tasks.module import ModuleTask
from sweep.tasks.upload import UploadTask, parse_file_mode

__all__ = [
    "Task",
    "RemoteTask",
    "ExecTask",
    "UploadTask",
    "DownloadTask",
    "ModuleTask",
    "InfoTask",
    "parse_file_mode",
]
