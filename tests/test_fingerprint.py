import hashlib

from uitest_agent.cache.fingerprint import fingerprint, safe_fingerprint


def test_fingerprint_is_sha256_of_joined_fields():
    expected = hashlib.sha256("click login|https://example.com|<body/>".encode("utf-8")).hexdigest()
    assert fingerprint("click login", "https://example.com", "<body/>") == expected


def test_fingerprint_is_deterministic():
    first = fingerprint("open page", "https://example.com", "<div>hello</div>")
    second = fingerprint("open page", "https://example.com", "<div>hello</div>")
    assert first == second
    assert len(first) == 64


def test_each_field_changes_the_key():
    base = fingerprint("a", "https://x", "<dom/>")
    assert fingerprint("b", "https://x", "<dom/>") != base
    assert fingerprint("a", "https://y", "<dom/>") != base
    assert fingerprint("a", "https://x", "<dom2/>") != base


def test_large_snapshots_are_hashed_whole():
    prefix = "<div>" * 50_000
    assert fingerprint("step", "u", prefix + "A") != fingerprint("step", "u", prefix + "B")


def test_unicode_input():
    key = fingerprint("点击登录", "https://例子.com", "<p>ünïcode</p>")
    assert key == fingerprint("点击登录", "https://例子.com", "<p>ünïcode</p>")


def test_safe_fingerprint_returns_none_when_hashing_fails(monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("digest unavailable")

    monkeypatch.setattr(hashlib, "sha256", broken)
    assert safe_fingerprint("a", "b", "c") is None
