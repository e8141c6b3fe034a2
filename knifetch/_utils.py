import inspect
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

MaybeByAttempt = T | Callable[[int], T]


async def maybe_await(value: T | Awaitable[T]) -> T:
    '''
    Await `value` if it is awaitable, otherwise return it unchanged.
    Lets hooks and predicates be plain functions or coroutines.
    '''
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


def by_attempt(value: MaybeByAttempt[T], attempted_times: int) -> T:
    '''
    Resolve an option that is either a fixed value or a
    function of the 1-based attempt number.

    Parameters
    ----------
    value : T | Callable[[int], T]
    attempted_times : int

    Returns
    -------
    T
    '''
    if callable(value):
        return value(attempted_times)
    return value
