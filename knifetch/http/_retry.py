'''
retry engine for knifetch, works with any zero-argument coroutine
function, not only http requests

Raises
------
RetryError
    _`MAX_RETRIES_REACHED` from the last attempt failure once every attempt
    failed, or `RETRY_IS_ABORTED` as soon as the abort signal is set_
'''

import asyncio
import dataclasses as dc
import enum
import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from knifetch._utils import MaybeByAttempt, by_attempt, maybe_await

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Future] = set()


class RetryErrorKind(enum.StrEnum):
    MAX_RETRIES_REACHED = 'MAX_RETRIES_REACHED'
    RETRY_IS_ABORTED = 'RETRY_IS_ABORTED'
    # only passed to `on_attempt_failed`, never raised to the caller
    ATTEMPT_PREDICATE_FAILED = 'ATTEMPT_PREDICATE_FAILED'
    ATTEMPT_TIMEOUT_REACHED = 'ATTEMPT_TIMEOUT_REACHED'


class RetryError(Exception):
    '''
    Raised by `retry`, the failure reason is in `kind`.

    Parent: Exception
    '''

    def __init__(self, kind: RetryErrorKind) -> None:
        super().__init__(kind.value)
        self.kind: RetryErrorKind = kind


@dc.dataclass(slots=True)
class RetryOptions:
    '''
    Options for `retry`. Durations are in seconds, `delay` and
    `timeout` may also be functions of the 1-based attempt number.

    Attributes
    ----------
    - max_tries: The maximum number of attempts, `math.inf` retries forever.

    - delay: The wait before the next attempt, skipped when <= 0.

    - timeout: The time budget of a single attempt (not of the whole retry),
    `None` disables it.

    - predicate: Validates a produced value, a falsy result fails the attempt.

    - on_attempt_failed: Called with the error and attempt number of each
    failed attempt. It runs as a separate callback so it never delays
    the next attempt.

    - signal: Setting this event aborts the retry.
    '''
    max_tries: int | float = 5
    delay: MaybeByAttempt[float] = 0
    timeout: MaybeByAttempt[float | None] = 60.0
    predicate: Callable[[Any], bool | Awaitable[bool]] | None = None
    on_attempt_failed: Callable[[BaseException, int], Any] | None = None
    signal: asyncio.Event | None = None

    def __post_init__(self) -> None:
        if self.max_tries < 1:
            raise ValueError(f'max_tries must be at least 1, got {self.max_tries}')


def _retrieve(future: asyncio.Future) -> None:
    # consume the outcome of a result we no longer wait for
    if not future.cancelled():
        future.exception()


def _fire_callback(
    callback: Callable[[BaseException, int], Any],
    error: BaseException,
    attempted_times: int,
) -> None:
    result = callback(error, attempted_times)
    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)


async def _attempt(
    operation: Callable[[], Awaitable[R] | R],
    options: RetryOptions,
    attempted_times: int,
) -> R:
    result = operation()

    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        task.add_done_callback(_retrieve)
        timeout = by_attempt(options.timeout, attempted_times)

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            raise RetryError(RetryErrorKind.ATTEMPT_TIMEOUT_REACHED)
        value = task.result()
    else:
        value = result

    if options.predicate is not None:
        if not await maybe_await(options.predicate(value)):
            raise RetryError(RetryErrorKind.ATTEMPT_PREDICATE_FAILED)

    return value


async def _run_attempts(
    operation: Callable[[], Awaitable[R] | R],
    options: RetryOptions,
) -> R:
    loop = asyncio.get_running_loop()
    attempted_times = 0
    last_error: BaseException | None = None

    while True:
        attempted_times += 1
        if attempted_times > options.max_tries:
            raise RetryError(RetryErrorKind.MAX_RETRIES_REACHED) from last_error

        try:
            return await _attempt(operation, options, attempted_times)
        except Exception as exc:
            last_error = exc
            logger.debug(f'Attempt {attempted_times}/{options.max_tries} failed: {exc!r}')
            if options.on_attempt_failed is not None:
                loop.call_soon(_fire_callback, options.on_attempt_failed, exc, attempted_times)

        delay = by_attempt(options.delay, attempted_times) or 0
        if delay > 0:
            await asyncio.sleep(delay)

        # the next attempt starts only after other ready callbacks had a turn
        await asyncio.sleep(0)


async def retry(
    operation: Callable[[], Awaitable[R] | R],
    options: RetryOptions | None = None,
    **overrides: Any,
) -> R:
    '''
    Run `operation` until it produces a value accepted by the predicate.

    Attempts are strictly sequential. An attempt that runs past its timeout
    is counted as failed but is not cancelled, whatever it returns later is
    ignored. Setting `options.signal` stops the retry immediately and
    discards the attempt in flight.

    Parameters
    ----------
    operation : Callable[[], Awaitable[R]]
        _called once per attempt_
    options : RetryOptions | None, optional
        _by default `RetryOptions()`_
    **overrides
        _`RetryOptions` fields replacing the ones in `options`_

    Returns
    -------
    R

    Raises
    ------
    RetryError
    '''
    options = options or RetryOptions()
    if overrides:
        options = dc.replace(options, **overrides)

    signal = options.signal
    if signal is None:
        return await _run_attempts(operation, options)

    if signal.is_set():
        raise RetryError(RetryErrorKind.RETRY_IS_ABORTED)

    work = asyncio.ensure_future(_run_attempts(operation, options))
    work.add_done_callback(_retrieve)
    aborted = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({work, aborted}, return_when=asyncio.FIRST_COMPLETED)
        if aborted in done:
            logger.debug('Retry aborted by signal')
            raise RetryError(RetryErrorKind.RETRY_IS_ABORTED)
        return work.result()
    finally:
        aborted.cancel()
        work.cancel()


class retry_policy:
    '''
    Decorator running every call of a coroutine function through `retry`.

    ```
    @retry_policy(max_tries=3, delay=0.25)
    async def fetch_index(client):
        ...
    ```
    '''

    def __init__(self, options: RetryOptions | None = None, **overrides: Any) -> None:
        '''
        Parameters
        ----------
        options : RetryOptions | None, optional
            The base options, by default `RetryOptions()`
        **overrides
            `RetryOptions` fields replacing the ones in `options`
        '''
        self.options: RetryOptions = dc.replace(options or RetryOptions(), **overrides)

    async def call_with_retries(
        self,
        func: Callable[P, Awaitable[R]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> R:
        return await retry(functools.partial(func, *args, **kwargs), self.options)

    def __call__(self, func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return await self.call_with_retries(func, *args, **kwargs)

        return wrapper
