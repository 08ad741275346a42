"""FHIR server client used as the engine's transport collaborator.

Implements search, read and capability lookup against a real FHIR server
over HTTP. Searchset Bundles are followed across ``next`` links, and
transport failures are retried with exponential backoff.
"""

from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urljoin

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fhir_conformance.config import Settings, get_settings
from fhir_conformance.engine.capabilities import ServerCapabilities
from fhir_conformance.engine.collaborators import ReadReply, SearchReply
from fhir_conformance.utils.exceptions import TransportError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

FHIR_JSON = "application/fhir+json"


class FHIRServerClient:
    """Sync FHIR client for the server under test."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        page_limit: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize FHIR client.

        Args:
            base_url: Base URL of the FHIR server
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per request
            page_limit: Maximum number of Bundle pages read per search
            transport: Optional httpx transport (used by tests)
            settings: Settings supplying any value not passed explicitly
        """
        settings = settings or get_settings()
        self.base_url = (base_url or settings.fhir_server_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.page_limit = page_limit if page_limit is not None else settings.page_limit
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.timeout),
            headers={"Accept": FHIR_JSON},
            transport=transport,
        )
        self._capabilities: Optional[ServerCapabilities] = None

    def close(self) -> None:
        """Close HTTP client."""
        self._client.close()

    def __enter__(self) -> "FHIRServerClient":
        """Enter context."""
        return self

    def __exit__(self, *exc_info: Any) -> None:
        """Close on context exit."""
        self.close()

    def _url(self, path: str) -> str:
        return urljoin(self.base_url + "/", path)

    def _get(self, url: str, params: Optional[Mapping[str, str]] = None) -> httpx.Response:
        return self._request("GET", url, params=params)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._client.request(method, url, **kwargs)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("fhir_request_failed", url=url, error=str(cause))
            raise TransportError(f"Failed to connect to FHIR server: {cause}") from cause
        raise TransportError("FHIR request was not attempted")

    @staticmethod
    def _json(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def search(self, resource_type: str, params: Mapping[str, str]) -> SearchReply:
        """Search ``resource_type``, reading every page of the result."""
        response = self._get(self._url(resource_type), params=dict(params))
        body = self._json(response)
        logger.info(
            "fhir_search",
            resource_type=resource_type,
            params=dict(params),
            status_code=response.status_code,
        )
        if not response.is_success or body is None or body.get("resourceType") != "Bundle":
            return SearchReply(status_code=response.status_code, body=body)

        resources = self._bundle_resources(body)
        return SearchReply(status_code=response.status_code, body=body, resources=resources)

    def _bundle_resources(self, bundle: Dict[str, Any]) -> List[Dict[str, Any]]:
        resources: List[Dict[str, Any]] = []
        pages = 0
        page: Optional[Dict[str, Any]] = bundle
        while page is not None:
            pages += 1
            for entry in page.get("entry", []) or []:
                if isinstance(entry.get("resource"), dict):
                    resources.append(entry["resource"])
            next_url = next(
                (
                    link.get("url")
                    for link in page.get("link", []) or []
                    if link.get("relation") == "next"
                ),
                None,
            )
            if not next_url or pages >= self.page_limit:
                break
            response = self._get(next_url)
            page = self._json(response) if response.is_success else None
        return resources

    def read(self, resource_type: str, resource_id: str) -> ReadReply:
        """Read one resource."""
        response = self._get(self._url(f"{resource_type}/{resource_id}"))
        body = self._json(response)
        logger.info(
            "fhir_read",
            resource_type=resource_type,
            resource_id=resource_id,
            status_code=response.status_code,
        )
        if not response.is_success:
            return ReadReply(status_code=response.status_code)
        return ReadReply(status_code=response.status_code, resource=body)

    def capability_statement(self) -> ServerCapabilities:
        """Fetch and cache the server's CapabilityStatement.

        Support is treated as unknown when the statement cannot be fetched.
        """
        if self._capabilities is None:
            try:
                response = self._get(self._url("metadata"))
            except TransportError as e:
                logger.warning("capability_statement_unreachable", error=e.message)
                self._capabilities = ServerCapabilities(None)
                return self._capabilities
            body = self._json(response)
            if response.is_success and body and body.get("resourceType") == "CapabilityStatement":
                self._capabilities = ServerCapabilities(body)
            else:
                logger.warning("capability_statement_unavailable", status_code=response.status_code)
                self._capabilities = ServerCapabilities(None)
        return self._capabilities

    def validate(self, resource: Dict[str, Any], profile_url: str) -> List[str]:
        """Validate ``resource`` against a profile with the server's ``$validate``.

        Returns:
            Messages of error and fatal issues in the returned OperationOutcome
        """
        resource_type = resource.get("resourceType", "Resource")
        response = self._request(
            "POST",
            self._url(f"{resource_type}/$validate"),
            params={"profile": profile_url},
            json=resource,
            headers={"Content-Type": FHIR_JSON},
        )
        body = self._json(response)
        logger.info(
            "fhir_validate",
            resource_type=resource_type,
            profile=profile_url,
            status_code=response.status_code,
        )
        if body is None or body.get("resourceType") != "OperationOutcome":
            if response.is_success:
                return []
            return [f"$validate failed with status {response.status_code}"]

        errors = []
        for issue in body.get("issue", []) or []:
            if issue.get("severity") not in ("error", "fatal"):
                continue
            text = issue.get("diagnostics") or (issue.get("details") or {}).get("text")
            location = ", ".join(issue.get("expression") or issue.get("location") or [])
            message = text or issue.get("code") or "validation error"
            errors.append(f"{location}: {message}" if location else message)
        return errors
