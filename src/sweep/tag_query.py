"""Boolean tag queries for selecting hosts.

A tag query combines tag names with ``!`` (not), ``&`` (and) and ``|``
(or), with parentheses for grouping:

    expr     := term ( "|" term )*
    term     := factor ( "&" factor )*
    factor   := "!" factor | "(" expr ")" | TAG

``!`` binds tighter than ``&``, which binds tighter than ``|``. Binary
operators are left-associative and whitespace between tokens is ignored.
Parentheses nest at most MAX_NESTING levels deep.

Example:
    >>> eval_tag_query("web & !(staging | canary)", {"web", "prod"})
    True
"""

from collections.abc import Container
from dataclasses import dataclass

from .exceptions import InvalidToken

LPAREN = "LPAREN"
RPAREN = "RPAREN"
AND = "AND"
OR = "OR"
NOT = "NOT"
TAG = "TAG"

_OPERATORS = {"(": LPAREN, ")": RPAREN, "&": AND, "|": OR, "!": NOT}

# Deepest parenthesis nesting the parser accepts
MAX_NESTING = 100


@dataclass(frozen=True)
class Token:
    """A lexical token of a tag query.

    Attributes:
        kind: One of LPAREN, RPAREN, AND, OR, NOT, TAG
        text: Source text of the token
        position: Character offset in the query
    """

    kind: str
    text: str
    position: int


@dataclass(frozen=True)
class Tag:
    name: str


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


Node = Tag | Not | And | Or


def tokenize(query: str) -> list[Token]:
    """Split a tag query into tokens, skipping whitespace."""
    tokens: list[Token] = []
    index = 0
    length = len(query)

    while index < length:
        char = query[index]
        if char.isspace():
            index += 1
        elif char in _OPERATORS:
            tokens.append(Token(_OPERATORS[char], char, index))
            index += 1
        else:
            start = index
            while index < length and not query[index].isspace() and query[index] not in _OPERATORS:
                index += 1
            tokens.append(Token(TAG, query[start:index], start))

    return tokens


class _Parser:
    """Recursive descent parser over a token list."""

    def __init__(self, query: str) -> None:
        self.query = query
        self.tokens = tokenize(query)
        self.index = 0
        self.depth = 0

    def _peek(self) -> Token | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, reason: str, token: Token | None) -> InvalidToken:
        if token is None:
            return InvalidToken(reason, self.query, "<end of expression>", len(self.query))
        return InvalidToken(reason, self.query, self.query[token.position:], token.position)

    def parse(self) -> Node:
        if not self.tokens:
            raise self._error("empty expression", None)

        node = self._expr()
        trailing = self._peek()
        if trailing is not None:
            if trailing.kind == RPAREN:
                raise self._error("unmatched ')'", trailing)
            raise self._error(f"unexpected {trailing.text!r}", trailing)
        return node

    def _expr(self) -> Node:
        node = self._term()
        while (token := self._peek()) is not None and token.kind == OR:
            self._advance()
            node = Or(node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while (token := self._peek()) is not None and token.kind == AND:
            self._advance()
            node = And(node, self._factor())
        return node

    def _factor(self) -> Node:
        negations = 0
        while (token := self._peek()) is not None and token.kind == NOT:
            self._advance()
            negations += 1

        node = self._operand()
        for _ in range(negations):
            node = Not(node)
        return node

    def _operand(self) -> Node:
        token = self._peek()
        if token is None:
            raise self._error("missing operand", None)

        if token.kind == LPAREN:
            if self.depth >= MAX_NESTING:
                raise self._error("expression nested too deeply", token)
            self._advance()
            self.depth += 1
            node = self._expr()
            self.depth -= 1
            closing = self._peek()
            if closing is None or closing.kind != RPAREN:
                raise self._error("unmatched '('", token)
            self._advance()
            return node

        if token.kind == TAG:
            self._advance()
            return Tag(token.text)

        raise self._error(f"missing operand before {token.text!r}", token)


def parse(query: str) -> Node:
    """Parse a tag query into an expression tree.

    Raises:
        InvalidToken: If the query is empty or malformed
    """
    return _Parser(query).parse()


def evaluate(node: Node, tags: Container[str]) -> bool:
    """Evaluate an expression tree against a host's tags.

    ``&`` and ``|`` short-circuit: the right operand is not evaluated when
    the left one already decides the result.

    The tree is walked with an explicit stack, so long ``!`` chains and
    long ``&``/``|`` chains do not hit the interpreter's recursion limit.
    """
    # (node, visited): a visited node's operand result is on top of values
    stack: list[tuple[Node, bool]] = [(node, False)]
    values: list[bool] = []

    while stack:
        current, visited = stack.pop()
        if isinstance(current, Tag):
            values.append(current.name in tags)
        elif isinstance(current, Not):
            if visited:
                values.append(not values.pop())
            else:
                stack.append((current, True))
                stack.append((current.operand, False))
        elif isinstance(current, (And, Or)):
            if not visited:
                stack.append((current, True))
                stack.append((current.left, False))
            elif values[-1] != isinstance(current, Or):
                # Left operand does not decide: the right one's value is the result
                values.pop()
                stack.append((current.right, False))
        else:
            raise TypeError(f"Unknown tag query node: {current!r}")

    return values.pop()


def eval_tag_query(query: str, tags: Container[str]) -> bool:
    """Parse and evaluate a tag query against a set of tags."""
    return evaluate(parse(query), tags)


class TagQuery:
    """A parsed tag query, reusable across many hosts.

    Example:
        >>> query = TagQuery("db | cache")
        >>> query.matches({"cache"})
        True
    """

    def __init__(self, query: str) -> None:
        self.source = query
        self.tree = parse(query)

    def matches(self, tags: Container[str]) -> bool:
        return evaluate(self.tree, tags)

    def __str__(self) -> str:
        return self.source

    def __repr__(self) -> str:
        return f"TagQuery({self.source!r})"
