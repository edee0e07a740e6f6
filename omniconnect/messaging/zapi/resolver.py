"""
Provider-resilient endpoint resolution for Z-API.

The resolver turns one logical call (method + endpoint + body) into a
``ProviderResponse`` by walking the ordered hypothesis list until one URL
family answers without a provider error marker. The winner is cached on the
instance and tried first next time; when it stops working the cache is
dropped and the full list is walked again.

Key Design Decisions:
- aiohttp session is injected, never created here
- Every attempt carries a bounded timeout; a timeout is a transport failure
- No sleeps and no retries beyond the fixed hypothesis list
- Only programming errors (malformed hypotheses) raise
"""

import base64
import json
from typing import Any

import aiohttp

from omniconnect.core.config.settings import settings
from omniconnect.core.logging.logger import get_logger
from omniconnect.schemas.core.types import FailureKind, ProviderErrorKind

from .classifier import AttemptFailure, AttemptOutcome, AttemptSuccess, classify_response
from .hypotheses import (
    DEFAULT_HYPOTHESES,
    ZapiUrlBuilder,
    order_for_credential,
    validate_hypothesis,
)
from .models import (
    ChannelCredential,
    EndpointHypothesis,
    HypothesisFailure,
    ProbeOutcome,
    ProbeReport,
    ProviderResponse,
)


def parse_body(content_type: str | None, raw: bytes) -> dict[str, Any]:
    """
    Parse a provider response body into a dict.

    Image responses (QR endpoints answer with PNG bytes on some versions) are
    returned as a data URI under ``image``. Non-object JSON is wrapped under
    ``value`` (or ``items`` for arrays) and unparseable text under ``raw``.
    """
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        encoded = base64.b64encode(raw).decode("ascii")
        return {"image": f"data:{content_type};base64,{encoded}"}

    if not raw:
        return {}

    try:
        parsed = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {"raw": raw.decode("utf-8", errors="replace")}

    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        return {"items": parsed}
    return {"value": parsed}


def aggregate_error_kind(failures: list[HypothesisFailure]) -> ProviderErrorKind:
    """Classify a call where every hypothesis failed."""
    kinds = {f.kind for f in failures}
    if kinds == {FailureKind.INSTANCE_NOT_FOUND}:
        return ProviderErrorKind.INVALID_CREDENTIALS
    if kinds == {FailureKind.NOT_FOUND}:
        return ProviderErrorKind.API_INCOMPATIBLE
    return ProviderErrorKind.MULTIPLE_TRANSIENT_ERRORS


def conclude_probe(outcomes: list[ProbeOutcome]) -> str:
    """Name the most likely cause behind a probe's outcomes."""
    working = [o.hypothesis for o in outcomes if o.succeeded]
    if working:
        return f"Working hypotheses: {', '.join(working)}"

    kinds = {o.failure for o in outcomes}
    if kinds == {FailureKind.INSTANCE_NOT_FOUND}:
        return "Instance not found on every URL family: check the instance id"
    if FailureKind.AUTHENTICATION in kinds:
        return "Token rejected: check the instance token and the account security token"
    if kinds == {FailureKind.NOT_FOUND}:
        return "No URL family recognized the endpoint: the provider API may have changed"
    if kinds <= {FailureKind.TRANSPORT, FailureKind.TIMEOUT}:
        return "Provider unreachable: check network connectivity"
    return "Mixed failures: inspect the individual outcomes"


class EndpointResolver:
    """Resolves logical provider calls against the hypothesis list."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        credential: ChannelCredential,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        hypotheses: tuple[EndpointHypothesis, ...]
        | list[EndpointHypothesis]
        | None = None,
    ):
        """Initialize the resolver.

        Args:
            session: Shared aiohttp session (owned by the application lifespan)
            credential: Channel credentials used for every attempt
            base_url: Provider host, defaults to ``ZAPI_BASE_URL``
            timeout_seconds: Per-attempt timeout, defaults to the configured value
            hypotheses: Ordered candidates, defaults to ``DEFAULT_HYPOTHESES``

        Raises:
            ValueError: If the hypothesis list is empty or malformed
        """
        candidates = list(hypotheses if hypotheses is not None else DEFAULT_HYPOTHESES)
        if not candidates:
            raise ValueError("EndpointResolver needs at least one hypothesis")
        for hypothesis in candidates:
            validate_hypothesis(hypothesis)

        self.session = session
        self.credential = credential
        self.url_builder = ZapiUrlBuilder(base_url or settings.zapi_base_url, credential)
        self.timeout_seconds = timeout_seconds or settings.provider_http_timeout_seconds
        self.hypotheses = order_for_credential(candidates, credential)
        self._winner: EndpointHypothesis | None = None
        self.logger = get_logger(__name__)

    @property
    def cached_hypothesis(self) -> EndpointHypothesis | None:
        return self._winner

    def invalidate(self) -> None:
        self._winner = None

    def _masked(self, url: str) -> str:
        token = self.credential.secret_token
        return url.replace(token, f"{token[:5]}...") if token else url

    async def _attempt(
        self,
        hypothesis: EndpointHypothesis,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None,
    ) -> AttemptOutcome:
        url = self.url_builder.url(hypothesis, endpoint)
        headers = self.url_builder.headers(hypothesis)
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        try:
            async with self.session.request(
                method, url, headers=headers, json=body, timeout=timeout
            ) as response:
                raw = await response.read()
                parsed = parse_body(response.content_type, raw)
                return classify_response(response.status, parsed)
        except TimeoutError:
            return AttemptFailure(
                kind=FailureKind.TIMEOUT,
                detail=f"No response within {self.timeout_seconds}s",
            )
        except aiohttp.ClientError as e:
            return AttemptFailure(kind=FailureKind.TRANSPORT, detail=str(e))

    def _failure(
        self, hypothesis: EndpointHypothesis, endpoint: str, outcome: AttemptFailure
    ) -> HypothesisFailure:
        return HypothesisFailure(
            hypothesis=hypothesis.description,
            url=self._masked(self.url_builder.url(hypothesis, endpoint)),
            kind=outcome.kind,
            status=outcome.status,
            detail=outcome.detail,
        )

    async def resolve(
        self, method: str, endpoint: str, body: dict[str, Any] | None = None
    ) -> ProviderResponse:
        """
        Resolve one logical call.

        The cached winner is tried first. On failure the cache is dropped and
        the remaining hypotheses are walked in order; the first success is
        cached (last writer wins when calls overlap).

        Args:
            method: HTTP method
            endpoint: Endpoint path relative to the instance base URL
            body: Optional JSON body

        Returns:
            ProviderResponse carrying the winning body or the classified failure
        """
        method = method.upper()
        failures: list[HypothesisFailure] = []
        last_body: dict[str, Any] = {}

        cached = self._winner
        if cached is not None:
            outcome = await self._attempt(cached, method, endpoint, body)
            if isinstance(outcome, AttemptSuccess):
                return ProviderResponse(
                    succeeded=True,
                    raw_body=outcome.body,
                    hypothesis_used=cached.description,
                )
            self.logger.info(
                f"Cached hypothesis '{cached.description}' failed for {method} "
                f"{endpoint} ({outcome.kind.value}), re-probing"
            )
            failures.append(self._failure(cached, endpoint, outcome))
            last_body = outcome.body
            if self._winner == cached:
                self._winner = None

        for hypothesis in self.hypotheses:
            if hypothesis == cached:
                continue

            outcome = await self._attempt(hypothesis, method, endpoint, body)
            if isinstance(outcome, AttemptSuccess):
                self._winner = hypothesis
                self.logger.debug(
                    f"{method} {endpoint} answered by '{hypothesis.description}'"
                )
                return ProviderResponse(
                    succeeded=True,
                    raw_body=outcome.body,
                    hypothesis_used=hypothesis.description,
                    failures=failures,
                )

            self.logger.debug(
                f"Hypothesis '{hypothesis.description}' rejected for {method} "
                f"{endpoint}: {outcome.kind.value} {outcome.detail}"
            )
            failures.append(self._failure(hypothesis, endpoint, outcome))
            last_body = outcome.body

        error_kind = aggregate_error_kind(failures)
        self.logger.warning(
            f"All {len(failures)} hypotheses failed for {method} {endpoint}: "
            f"{error_kind.value}"
        )
        return ProviderResponse(
            succeeded=False,
            error_kind=error_kind,
            raw_body=last_body,
            failures=failures,
        )

    async def probe(
        self, method: str, endpoint: str, body: dict[str, Any] | None = None
    ) -> ProbeReport:
        """
        Issue one call against every hypothesis without touching the cache.

        Used for operator diagnostics; the report names the likely cause.
        """
        outcomes: list[ProbeOutcome] = []
        for hypothesis in self.hypotheses:
            outcome = await self._attempt(hypothesis, method.upper(), endpoint, body)
            url = self._masked(self.url_builder.url(hypothesis, endpoint))
            if isinstance(outcome, AttemptSuccess):
                outcomes.append(
                    ProbeOutcome(
                        hypothesis=hypothesis.description,
                        url=url,
                        succeeded=True,
                        status=outcome.status,
                    )
                )
            else:
                outcomes.append(
                    ProbeOutcome(
                        hypothesis=hypothesis.description,
                        url=url,
                        succeeded=False,
                        status=outcome.status,
                        failure=outcome.kind,
                        detail=outcome.detail,
                    )
                )

        return ProbeReport(
            endpoint=endpoint, outcomes=outcomes, conclusion=conclude_probe(outcomes)
        )
