import json
import socket
import threading
import time

import pytest

from rainax.api import ApiRequestHandler, ApiServer, HttpRequest, parse_request
from rainax.status import DownloadStatus

PORT = 8765
TOKEN = "token"


def safe(url):
    return url.startswith("https://")


def make_handler(peer="127.0.0.1", calls=None, statuses=None, max_body=1024):
    return ApiRequestHandler(
        token=TOKEN,
        port=PORT,
        peer_host=peer,
        is_safe_url=safe,
        on_download=(lambda *a: calls.append(a)) if calls is not None else None,
        status_source=(lambda: statuses) if statuses is not None else None,
        max_body=max_body,
    )


def build(method, path, headers=None, body=b"", port=PORT):
    all_headers = {"Host": f"127.0.0.1:{port}"}
    all_headers.update(headers or {})
    head = f"{method} {path} HTTP/1.1\r\n" + "".join(
        f"{k}: {v}\r\n" for k, v in all_headers.items()
    )
    return head.encode() + b"\r\n" + body


def post_download(payload, headers=None, raw_body=None):
    body = raw_body if raw_body is not None else json.dumps(payload).encode()
    hdrs = {
        "Content-Type": "application/json; charset=utf-8",
        "Content-Length": str(len(body)),
        "X-YDM-Token": TOKEN,
    }
    hdrs.update(headers or {})
    return parse_request(build("POST", "/download", hdrs, body))


def split_response(data):
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode().split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name] = value
    return lines[0], headers, body


def test_parse_request_fields():
    raw = b"get /status?x=1 HTTP/1.1\r\nHost: a\r\nX-Thing:  v \r\n\r\nBODY"
    req = parse_request(raw)
    assert req.method == "GET"
    assert req.path == "/status"
    assert req.headers == {"host": "a", "x-thing": "v"}
    assert req.body == b"BODY"


def test_parse_request_bare_newlines():
    req = parse_request(b"POST /download HTTP/1.1\nContent-Length: 2\n\n{}")
    assert req.body == b"{}"
    assert req.content_length == 2


def test_parse_request_last_header_wins():
    req = parse_request(b"GET / HTTP/1.1\r\nA: 1\r\na: 2\r\n\r\n")
    assert req.header("A") == "2"


def test_parse_request_rejects_bad_request_line():
    with pytest.raises(ValueError):
        parse_request(b"GARBAGE\r\n\r\n")


def test_content_length_not_a_number_is_zero():
    req = HttpRequest("POST", "/", {"content-length": "abc"})
    assert req.content_length == 0


def test_ping_wire_format():
    resp = make_handler().handle(parse_request(build("GET", "/ping")))
    status, headers, body = split_response(resp)
    assert status == "HTTP/1.1 200 OK"
    assert body == b'{"status":"running","version":"2.0"}'
    assert headers["Content-Length"] == str(len(body))
    assert headers["Content-Type"] == "application/json; charset=utf-8"
    assert headers["Connection"] == "close"
    assert headers["Cache-Control"] == "no-store"


def test_non_local_peer_forbidden():
    resp = make_handler(peer="192.0.2.10").handle(parse_request(build("GET", "/ping")))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 403 Forbidden"
    assert json.loads(body) == {"error": "Forbidden"}


@pytest.mark.parametrize("peer", ["::1", "::ffff:127.0.0.1", "127.0.0.5"])
def test_loopback_peers_accepted(peer):
    resp = make_handler(peer=peer).handle(parse_request(build("GET", "/ping")))
    assert split_response(resp)[0] == "HTTP/1.1 200 OK"


def test_bad_host_header_forbidden():
    req = parse_request(build("GET", "/ping", {"Host": "evil.example.com"}))
    assert split_response(make_handler().handle(req))[0] == "HTTP/1.1 403 Forbidden"


def test_localhost_host_header_accepted():
    req = parse_request(build("GET", "/ping", {"Host": f"LOCALHOST:{PORT}"}))
    assert split_response(make_handler().handle(req))[0] == "HTTP/1.1 200 OK"


def test_status_requires_token():
    resp = make_handler().handle(parse_request(build("GET", "/status")))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 401 Unauthorized"
    assert json.loads(body) == {"error": "Unauthorized"}


def test_status_wrong_token():
    req = parse_request(build("GET", "/status", {"X-YDM-Token": "secret"}))
    assert split_response(make_handler().handle(req))[0] == "HTTP/1.1 401 Unauthorized"


def test_status_counts():
    statuses = [
        DownloadStatus.RUNNING,
        DownloadStatus.QUEUED,
        DownloadStatus.PAUSED,
        DownloadStatus.COMPLETED,
    ]
    req = parse_request(build("GET", "/status", {"X-YDM-Token": TOKEN}))
    _, _, body = split_response(make_handler(statuses=statuses).handle(req))
    assert json.loads(body) == {"paused": 1, "queued": 1, "running": 1, "total": 3}


def test_status_without_source_is_zero():
    req = parse_request(build("GET", "/status", {"X-YDM-Token": TOKEN}))
    data = json.loads(split_response(make_handler().handle(req))[2])
    assert set(data.values()) == {0}
    assert set(data) == {"running", "queued", "paused", "total"}


def test_unknown_get_path():
    req = parse_request(build("GET", "/nope", {"X-YDM-Token": TOKEN}))
    status, _, body = split_response(make_handler().handle(req))
    assert status == "HTTP/1.1 404 Not Found"
    assert json.loads(body) == {"error": "Not found"}


def test_post_download_queued():
    calls = []
    req = post_download({"url": " https://example.com/v ", "title": "Clip", "quality": "720P"})
    status, _, body = split_response(make_handler(calls=calls).handle(req))
    assert status == "HTTP/1.1 200 OK"
    assert json.loads(body) == {"status": "queued"}
    assert calls == [("https://example.com/v", "Clip", "720p")]


def test_post_unknown_quality_becomes_best():
    calls = []
    make_handler(calls=calls).handle(post_download({"url": "https://example.com/v", "quality": "8k"}))
    assert calls[0][2] == "best"


def test_post_title_sanitised_and_truncated():
    calls = []
    title = "a\x00b\x1fc\x7f" + "x" * 300
    make_handler(calls=calls).handle(post_download({"url": "https://example.com/v", "title": title}))
    sent = calls[0][1]
    assert sent.startswith("abc")
    assert len(sent) == 200
    assert not any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in sent)


def test_post_non_string_fields_are_empty():
    calls = []
    resp = make_handler(calls=calls).handle(post_download({"url": 5}))
    assert split_response(resp)[0] == "HTTP/1.1 422 Unprocessable Entity"
    assert calls == []


def test_post_unsafe_url():
    calls = []
    resp = make_handler(calls=calls).handle(post_download({"url": "file:///etc/passwd"}))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 422 Unprocessable Entity"
    assert json.loads(body) == {"error": "Invalid or disallowed URL"}
    assert calls == []


def test_post_wrong_content_type():
    req = post_download({"url": "https://example.com/v"}, {"Content-Type": "text/plain"})
    status, _, body = split_response(make_handler().handle(req))
    assert status == "HTTP/1.1 415 Unsupported Media Type"
    assert json.loads(body) == {"error": "Content-Type must be application/json"}


def test_post_oversized_body():
    req = post_download({"url": "https://example.com/v", "title": "x" * 100})
    resp = make_handler(max_body=10).handle(req)
    assert split_response(resp)[0] == "HTTP/1.1 413 Request Entity Too Large"


def test_post_missing_length():
    req = post_download({"url": "https://example.com/v"}, {"Content-Length": "0"})
    assert split_response(make_handler().handle(req))[0] == "HTTP/1.1 413 Request Entity Too Large"


@pytest.mark.parametrize("raw_body", [b"{not json", b"[1, 2]", b"\xff\xfe"])
def test_post_invalid_json(raw_body):
    resp = make_handler().handle(post_download(None, raw_body=raw_body))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 400 Bad Request"
    assert json.loads(body) == {"error": "Invalid JSON"}


def test_post_cross_site_rejected():
    req = post_download({"url": "https://example.com/v"}, {"Sec-Fetch-Site": "cross-site"})
    status, _, body = split_response(make_handler().handle(req))
    assert status == "HTTP/1.1 403 Forbidden"
    assert json.loads(body) == {"error": "Forbidden – origin"}


def test_post_extension_origin_allowed_even_cross_site():
    calls = []
    origin = "chrome-extension://abcdef"
    req = post_download(
        {"url": "https://example.com/v"},
        {"Origin": origin, "Sec-Fetch-Site": "cross-site"},
    )
    status, headers, _ = split_response(make_handler(calls=calls).handle(req))
    assert status == "HTTP/1.1 200 OK"
    assert headers["Access-Control-Allow-Origin"] == origin
    assert len(calls) == 1


def test_post_foreign_origin_rejected_without_cors_header():
    req = post_download({"url": "https://example.com/v"}, {"Origin": "https://evil.example.com"})
    status, headers, _ = split_response(make_handler().handle(req))
    assert status == "HTTP/1.1 403 Forbidden"
    assert "Access-Control-Allow-Origin" not in headers


def test_post_wrong_path():
    raw = build("POST", "/other", {"X-YDM-Token": TOKEN})
    assert split_response(make_handler().handle(parse_request(raw)))[0] == "HTTP/1.1 404 Not Found"


def test_options_preflight():
    origin = "moz-extension://abcdef"
    resp = make_handler().handle(parse_request(build("OPTIONS", "/download", {"Origin": origin})))
    status, headers, body = split_response(resp)
    assert status == "HTTP/1.1 204 No Content"
    assert headers["Access-Control-Allow-Origin"] == origin
    assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
    assert headers["Access-Control-Allow-Headers"] == "Content-Type, X-YDM-Token"
    assert headers["Content-Length"] == "0"
    assert body == b""


def test_options_without_origin():
    resp = make_handler().handle(parse_request(build("OPTIONS", "/download")))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 403 Forbidden"
    assert json.loads(body) == {"error": "Forbidden – origin check failed"}


def test_options_non_local():
    req = parse_request(build("OPTIONS", "/download", {"Origin": "chrome-extension://abc"}))
    body = split_response(make_handler(peer="198.51.100.1").handle(req))[2]
    assert json.loads(body) == {"error": "Forbidden – local check failed"}


def test_unknown_method():
    resp = make_handler().handle(parse_request(build("DELETE", "/download")))
    status, _, body = split_response(resp)
    assert status == "HTTP/1.1 405"
    assert json.loads(body) == {"error": "Method not allowed"}


@pytest.mark.parametrize(
    "origin, allowed",
    [
        ("", True),
        ("chrome-extension://abcdef", True),
        ("EDGE-EXTENSION://abcdef", True),
        ("chrome-extension://", False),
        (f"http://localhost:{PORT}", True),
        (f"http://127.0.0.1:{PORT}", True),
        ("http://localhost", False),
        (f"https://127.0.0.1:{PORT}", False),
        (f"http://evil.example.com:{PORT}", False),
        ("http://localhost:notaport", False),
    ],
)
def test_origin_allowed(origin, allowed):
    assert make_handler().origin_allowed(origin) is allowed


def test_origin_default_port_matches_port_80():
    handler = ApiRequestHandler(TOKEN, 80, "127.0.0.1", safe)
    assert handler.origin_allowed("http://localhost") is True


def _exchange(port, chunks):
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        for chunk in chunks:
            sock.sendall(chunk)
            time.sleep(0.05)
        data = b""
        while True:
            part = sock.recv(65536)
            if not part:
                break
            data += part
    return data


def test_server_round_trip():
    calls = []
    done = threading.Event()

    def on_download(*args):
        calls.append(args)
        done.set()

    with ApiServer("127.0.0.1", 0, TOKEN, safe, on_download, lambda: []) as server:
        port = server.port
        ping = _exchange(port, [build("GET", "/ping", port=port)])
        assert split_response(ping)[0] == "HTTP/1.1 200 OK"

        body = json.dumps({"url": "https://example.com/v", "quality": "mp3"}).encode()
        head = build(
            "POST",
            "/download",
            {
                "Content-Type": "application/json",
                "Content-Length": str(len(body)),
                "X-YDM-Token": TOKEN,
            },
            port=port,
        )
        resp = _exchange(port, [head, body])
        assert json.loads(split_response(resp)[2]) == {"status": "queued"}
        assert done.wait(2)
    assert calls == [("https://example.com/v", "", "mp3")]


def test_server_port_in_use_raises():
    with ApiServer("127.0.0.1", 0, TOKEN, safe) as first:
        second = ApiServer("127.0.0.1", first.port, TOKEN, safe)
        with pytest.raises(OSError):
            second.start()