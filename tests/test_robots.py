from modules.portal_watch.lib.robots import RobotsPolicy

ROBOTS = "User-agent: *\nDisallow: /private\n"


class FakeClient:
    def __init__(self, status=200, text=ROBOTS, exc=None):
        self.status = status
        self.text = text
        self.exc = exc
        self.fetched = []
        self.closed = False

    def fetch(self, url, **kwargs):
        self.fetched.append(url)
        if self.exc:
            raise self.exc
        return self.status, self.text

    def close(self):
        self.closed = True


def test_disallowed_path_is_denied():
    policy = RobotsPolicy(FakeClient())
    assert policy.is_allowed("https://acme.example/private/jobs") is False
    assert policy.is_allowed("https://acme.example/careers") is True


def test_robots_fetched_once_per_host():
    client = FakeClient()
    policy = RobotsPolicy(client)
    policy.is_allowed("https://acme.example/a")
    policy.is_allowed("https://acme.example/b")
    policy.is_allowed("https://globex.example/c")
    assert client.fetched == ["https://acme.example/robots.txt", "https://globex.example/robots.txt"]


def test_missing_robots_allows():
    assert RobotsPolicy(FakeClient(status=404, text="")).is_allowed("https://acme.example/private") is True


def test_fetch_error_allows():
    policy = RobotsPolicy(FakeClient(exc=ConnectionError("refused")))
    assert policy.is_allowed("https://acme.example/private") is True


def test_url_without_scheme_allows():
    client = FakeClient()
    assert RobotsPolicy(client).is_allowed("acme.example/private") is True
    assert client.fetched == []


def test_close_releases_client():
    client = FakeClient()
    RobotsPolicy(client).close()
    assert client.closed
