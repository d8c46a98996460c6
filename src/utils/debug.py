from __future__ import annotations

_verbose = False
_prefix = "[snakeopt]"


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def log(message: str, *, scope: str | None = None) -> None:
    if not _verbose:
        return
    if scope is None:
        print(f"{_prefix} {message}")
    else:
        print(f"{_prefix}[{scope}] {message}")
