from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from customers.models import Company


_current_company: ContextVar[Optional["Company"]] = ContextVar(
    "current_company", default=None
)


def get_current_company() -> Optional["Company"]:
    return _current_company.get()


def set_current_company(company: Optional["Company"]) -> Token:
    return _current_company.set(company)


def reset_current_company(token: Token) -> None:
    _current_company.reset(token)


@contextmanager
def tenant_context(company: Optional["Company"]) -> Iterator[Optional["Company"]]:
    """Run a block (management command, worker job) scoped to `company`."""

    token = set_current_company(company)
    try:
        yield company
    finally:
        reset_current_company(token)
