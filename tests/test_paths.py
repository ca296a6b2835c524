import pytest

from devlog.paths import normalize_page_path, page_path_from_url, shorten_page_path


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("/orders", "/orders"),
        ("orders", "/orders"),
        ("/orders/", "/orders"),
        ("//orders///42", "/orders/42"),
        ("/orders?tab=open#top", "/orders"),
        ("", "/"),
        ("/", "/"),
    ],
)
def test_normalize_page_path(raw, expected):
    assert normalize_page_path(raw) == expected


def test_page_path_from_url():
    assert page_path_from_url("http://localhost:3000/projects/42?x=1#y") == "/projects/42"
    assert page_path_from_url("http://localhost:3000") == "/"
    assert page_path_from_url("/already/a/path/") == "/already/a/path"


def test_shorten_page_path():
    assert shorten_page_path("/projects/42") == "/projects"
    assert shorten_page_path("/runs/3f2b8c1e-9a4d-4c6b-8e2f-1a2b3c4d5e6f") == "/runs"
    assert shorten_page_path("/settings") == "/settings"
    assert shorten_page_path("/42") == "/"
