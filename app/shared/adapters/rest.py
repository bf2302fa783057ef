from typing import Any, Dict, Optional

import httpx

from app.shared.adapters.base import BaseProviderAdapter
from app.shared.adapters.http_retry import execute_with_http_retry
from app.shared.core.http import get_http_client


class RestProviderAdapter(BaseProviderAdapter):
    """
    Base for providers driven over plain REST with a bearer token.

    Requests go through the shared pooled client and the unified retry
    helper, so every non-2xx answer surfaces as a provider-prefixed error.
    POSTs are sent once.
    """

    BASE_URL: str = ""

    def _auth_headers(self, creds: Any) -> Dict[str, str]:
        return {"Authorization": f"Bearer {creds.token.get_secret_value()}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        creds: Any = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        base_url: Optional[str] = None,
    ) -> httpx.Response:
        creds = creds if creds is not None else self._require_credentials()
        url = f"{base_url or self.BASE_URL}{path}"
        request_headers = {"Content-Type": "application/json", **self._auth_headers(creds)}
        if headers:
            request_headers.update(headers)
        client = get_http_client()

        return await execute_with_http_retry(
            request=lambda: client.request(
                method,
                url,
                json=json,
                params=params,
                content=content,
                headers=request_headers,
            ),
            url=url,
            provider=self.provider.value,
            error_prefix=f"{self.display_name} {method} {path}",
            # A POST that timed out may still have created the resource
            max_retries=1 if method.upper() == "POST" else 3,
        )
