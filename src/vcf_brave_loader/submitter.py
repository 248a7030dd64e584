"""Batch submission to the variant server over HTTP.

Every response status is mapped by :func:`classify_status` to accepted,
transient or permanent. Transient failures (and transport errors such
as timeouts) are retried with exponential backoff; permanent failures
stop immediately. All attempts for one batch carry the same
``Idempotency-Key`` so a retried request cannot create duplicates.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import backoff
import httpx

from . import __version__
from .config import UploadConfig
from .models import SubmissionBatch
from .tls import get_verify_param_for_httpx

logger = logging.getLogger(__name__)

ACCEPTED_STATUSES = frozenset({200, 201, 202, 204})
TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


class SubmissionOutcome(Enum):
    ACCEPTED = "accepted"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_status(status_code: int) -> SubmissionOutcome:
    """Map an HTTP status code to a submission outcome."""
    if status_code in ACCEPTED_STATUSES:
        return SubmissionOutcome.ACCEPTED
    if status_code in TRANSIENT_STATUSES:
        return SubmissionOutcome.TRANSIENT
    return SubmissionOutcome.PERMANENT


class SubmissionError(Exception):
    """Base class for failed batch submissions."""

    def __init__(self, message: str, status_code: int | None = None, attempts: int = 0):
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class TransientSubmissionError(SubmissionError):
    """A failure worth retrying: network error, timeout or overload."""

    pass


class PermanentSubmissionError(SubmissionError):
    """The server deterministically rejected the batch."""

    pass


class RetriesExhaustedError(SubmissionError):
    """A batch kept failing transiently until the retry ceiling."""

    pass


@dataclass
class SubmissionReceipt:
    """Acknowledgement of a delivered batch."""

    sequence: int
    size: int
    status_code: int
    attempts: int


class BatchSubmitter:
    """Deliver :class:`SubmissionBatch` objects to ``{host}/variants/batch``."""

    def __init__(
        self,
        config: UploadConfig,
        total_samples: int = 0,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.total_samples = total_samples
        self.client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                verify=get_verify_param_for_httpx(self.config.tls),
                headers={"User-Agent": f"vcf-brave-loader/{__version__}"},
            )
            self._owns_client = True

    async def close(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> "BatchSubmitter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _auth(self) -> httpx.Auth | None:
        if self.config.token is not None:
            return None
        password = self.config.password.get_value() if self.config.password else ""
        return httpx.BasicAuth(self.config.username, password)

    def _headers(self, batch: SubmissionBatch) -> dict[str, str]:
        headers = {"Idempotency-Key": str(batch.batch_id)}
        if self.config.token is not None:
            headers["Authorization"] = f"Bearer {self.config.token.get_value()}"
        return headers

    async def submit(self, batch: SubmissionBatch) -> SubmissionReceipt:
        """Send one batch, retrying transient failures.

        Raises:
            PermanentSubmissionError: The server rejected the batch.
            RetriesExhaustedError: Transient failures outlasted the retry ceiling.
        """
        if self.client is None:
            await self.connect()

        url = self.config.submit_url
        payload = batch.to_payload(
            self.config.assembly, self.config.dataset, self.total_samples
        )
        headers = self._headers(batch)
        auth = self._auth()
        attempts = 0

        async def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            try:
                response = await self.client.post(
                    url, json=payload, headers=headers, auth=auth
                )
            except (httpx.LocalProtocolError, httpx.UnsupportedProtocol) as e:
                raise PermanentSubmissionError(
                    f"batch {batch.sequence}: {type(e).__name__}: {e}"
                ) from e
            except httpx.TransportError as e:
                raise TransientSubmissionError(
                    f"batch {batch.sequence}: {type(e).__name__}: {e}"
                ) from e
            except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
                # bad credentials or URL; the request could not be built
                raise PermanentSubmissionError(
                    f"batch {batch.sequence}: cannot send request: {type(e).__name__}"
                ) from e

            outcome = classify_status(response.status_code)
            if outcome is SubmissionOutcome.ACCEPTED:
                return response

            message = (
                f"batch {batch.sequence}: server returned "
                f"{response.status_code}: {response.text[:200]}"
            )
            if outcome is SubmissionOutcome.TRANSIENT:
                raise TransientSubmissionError(message, status_code=response.status_code)
            raise PermanentSubmissionError(message, status_code=response.status_code)

        retrying = backoff.on_exception(
            backoff.expo,
            TransientSubmissionError,
            max_tries=self.config.max_retries + 1,
            jitter=None,
            on_backoff=self._log_backoff,
            logger=None,
            factor=self.config.backoff_factor,
            max_value=self.config.max_backoff,
        )(send)

        logger.debug("Submitting batch %d (%d variants) to %s", batch.sequence, len(batch), url)
        try:
            response = await retrying()
        except TransientSubmissionError as e:
            logger.error(
                "Giving up on batch %d after %d attempt(s): %s", batch.sequence, attempts, e
            )
            raise RetriesExhaustedError(
                f"batch {batch.sequence} failed after {attempts} attempt(s): {e}",
                status_code=e.status_code,
                attempts=attempts,
            ) from e
        except PermanentSubmissionError as e:
            e.attempts = attempts
            logger.error("Batch %d rejected: %s", batch.sequence, e)
            raise

        logger.info(
            "Batch %d accepted: %d variants (HTTP %d)",
            batch.sequence,
            len(batch),
            response.status_code,
        )
        return SubmissionReceipt(
            sequence=batch.sequence,
            size=len(batch),
            status_code=response.status_code,
            attempts=attempts,
        )

    @staticmethod
    def _log_backoff(details: dict) -> None:
        logger.warning(
            "Attempt %d failed (%s); retrying in %.1fs",
            details["tries"],
            details.get("exception"),
            details["wait"],
        )
