import httpx

from kyc_bridge.config import Settings

AUTH_URL = "https://ind-state.idv.hyperverge.co/v2/auth/token"
LOGS_URL = "https://ind.idv.hyperverge.co/v1/link-kyc/results"
OUTPUT_URL = "https://ind.idv.hyperverge.co/v1/output"


def make_settings(**overrides) -> Settings:
    values = {
        "HYPERVERGE_APP_ID": "test-app-id",
        "HYPERVERGE_APP_KEY": "test-app-key",
        "HYPERVERGE_WORKFLOW_ID": "test-workflow",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _route_key(url: httpx.URL) -> str:
    return f"{url.scheme}://{url.host}{url.path}"


class MockUpstream:
    """
    Stand-in for an HTTP service. Routes map a URL (without query) to
    (status, json body), (status, raw text) or an exception to raise.
    Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(_route_key(request.url))
        if route is None:
            return httpx.Response(404, json={"message": "no route"})
        if isinstance(route, Exception):
            raise route
        status, body = route
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls_to(self, url: str):
        return [r for r in self.requests if _route_key(r.url) == url]
