"""Success/failure values for best-effort collaborator calls."""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Outcome of a collaborator call. On failure `value` holds the fallback."""

    ok: bool
    value: T
    error: Optional[BaseException] = None


def attempt(
    label: str,
    func: Callable[..., T],
    *args: Any,
    errors: Tuple[Type[BaseException], ...],
    fallback: T,
    **kwargs: Any,
) -> ServiceResult[T]:
    """
    Call `func`, turning the listed exception types into a failed result.

    Exceptions not listed in `errors` propagate.
    """
    try:
        return ServiceResult(ok=True, value=func(*args, **kwargs))
    except errors as e:
        logger.warning(f"{label} failed, continuing without it: {type(e).__name__}: {e}")
        return ServiceResult(ok=False, value=fallback, error=e)
