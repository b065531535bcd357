"""
Exception types and error boundaries for deckmap.

Device, settings and automation problems are raised as ``DeckmapError``
subclasses. Action failures are not exceptions at all: they travel as
``ActionResult`` values. The boundaries below are used where an exception
must stop (event handling, LED updates, cleanup) instead of propagating.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class DeckmapError(Exception):
    """Base class of deckmap errors."""


class DeviceError(DeckmapError):
    """The control deck rejected a draw, LED or brightness request."""


class ConfigurationError(DeckmapError):
    """The service settings file is unreadable or holds invalid values."""


class PlatformError(DeckmapError):
    """A process or URL could not be launched."""


class AutomationError(PlatformError):
    """An automation helper exited non-zero or ran past its timeout."""


class UnsupportedPlatformError(AutomationError):
    """The requested automation capability does not exist on this OS.

    Raised before anything is executed.
    """


def error_boundary(
    *,
    reraise: bool = False,
    default_return: Any = None,
    log_level: int = logging.ERROR,
) -> Callable[[F], F]:
    """
    Stop exceptions at a function boundary.

    The exception is logged with its traceback and ``default_return`` is
    returned in its place, unless ``reraise`` is set.

    Example:
        >>> @error_boundary(default_return=False)
        ... def handle_event(self, event):
        ...     self.execute_shortcut(event.keys[0])
        ...     return True
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.log(log_level, f"{func.__qualname__} failed: {e}", exc_info=True)
                if reraise:
                    raise
                return default_return

        return wrapper  # type: ignore

    return decorator


def safe_execute(
    func: Callable[[], Any],
    *,
    on_error: Optional[Callable[[Exception], Any]] = None,
    default: Any = None,
    log_level: int = logging.ERROR,
) -> Any:
    """
    Call ``func`` once, returning ``default`` if it raises.

    Meant for best-effort device calls such as brightness and profile LEDs,
    which are usually logged at DEBUG since a failure changes nothing else.

    Args:
        func: Zero-argument callable
        on_error: Receives the exception, if any
        default: Returned on error
        log_level: Level the failure is logged at (tracebacks from ERROR up)
    """
    try:
        return func()
    except Exception as e:
        logger.log(log_level, f"Best-effort call failed: {e}", exc_info=log_level >= logging.ERROR)
        if on_error:
            on_error(e)
        return default
