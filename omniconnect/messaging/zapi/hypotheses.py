"""
Endpoint hypotheses for the Z-API provider.

The provider has shipped several URL layouts and auth placements over time and
does not document which one a given instance answers on. The candidates are
kept here as plain data, tried in order by the resolver.
"""

from omniconnect.schemas.core.types import AuthMode

from .models import ChannelCredential, EndpointHypothesis

DEFAULT_HYPOTHESES: tuple[EndpointHypothesis, ...] = (
    EndpointHypothesis(
        base_url_template="{base_url}/instances/{instance_id}/token/{token}",
        auth_mode=AuthMode.TOKEN_IN_PATH,
        description="Token in path",
    ),
    EndpointHypothesis(
        base_url_template="{base_url}/instances/{instance_id}",
        auth_mode=AuthMode.TOKEN_IN_HEADER,
        description="Client-Token header",
    ),
    EndpointHypothesis(
        base_url_template="{base_url}/v2/instances/{instance_id}/token/{token}",
        auth_mode=AuthMode.TOKEN_IN_PATH,
        description="v2 with token in path",
    ),
    EndpointHypothesis(
        base_url_template="{base_url}/v2/instances/{instance_id}",
        auth_mode=AuthMode.TOKEN_IN_HEADER,
        description="v2 with Client-Token header",
    ),
    EndpointHypothesis(
        base_url_template="{base_url}/api/instances/{instance_id}/token/{token}",
        auth_mode=AuthMode.TOKEN_IN_PATH,
        description="api prefix with token in path",
    ),
)


def validate_hypothesis(hypothesis: EndpointHypothesis) -> None:
    """
    Reject templates the URL builder cannot fill.

    Raises:
        ValueError: If a placeholder required by the auth mode is missing
    """
    template = hypothesis.base_url_template
    if "{instance_id}" not in template:
        raise ValueError(
            f"Hypothesis '{hypothesis.description}' lacks an {{instance_id}} placeholder"
        )
    if hypothesis.auth_mode == AuthMode.TOKEN_IN_PATH and "{token}" not in template:
        raise ValueError(
            f"Hypothesis '{hypothesis.description}' puts the token in the path "
            "but has no {token} placeholder"
        )
    if hypothesis.auth_mode == AuthMode.TOKEN_IN_HEADER and "{token}" in template:
        raise ValueError(
            f"Hypothesis '{hypothesis.description}' sends the token as a header "
            "but also templates it into the path"
        )


def order_for_credential(
    hypotheses: tuple[EndpointHypothesis, ...] | list[EndpointHypothesis],
    credential: ChannelCredential,
) -> list[EndpointHypothesis]:
    """Stable-sort hypotheses so the credential's preferred auth mode comes first."""
    return sorted(hypotheses, key=lambda h: h.auth_mode != credential.auth_mode)


class ZapiUrlBuilder:
    """URL and header builder for Z-API requests under one hypothesis."""

    def __init__(self, base_url: str, credential: ChannelCredential):
        self.base_url = base_url.rstrip("/")
        self.credential = credential

    def base(self, hypothesis: EndpointHypothesis) -> str:
        validate_hypothesis(hypothesis)
        return hypothesis.base_url_template.format(
            base_url=self.base_url,
            instance_id=self.credential.resolved_instance_id,
            token=self.credential.secret_token,
        )

    def url(self, hypothesis: EndpointHypothesis, endpoint: str) -> str:
        return f"{self.base(hypothesis)}/{endpoint.lstrip('/')}"

    def headers(self, hypothesis: EndpointHypothesis) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if hypothesis.auth_mode == AuthMode.TOKEN_IN_HEADER:
            headers["Client-Token"] = (
                self.credential.client_token or self.credential.secret_token
            )
        elif self.credential.client_token:
            # Account-level security token, sent alongside path auth
            headers["Client-Token"] = self.credential.client_token
        return headers
