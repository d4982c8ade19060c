# tests/test_reveal_store.py

from nophish.services.reveal_store import RevealStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_reveal_before_expiry():
    clock = FakeClock()
    reveals = RevealStore(ttl=600, clock=clock)
    token = reveals.create([("https://evil.com", "Database")])

    assert token.startswith("reveal_scam_")
    clock.now += 599
    assert reveals.reveal(token) == [("https://evil.com", "Database")]
    # Revealing does not consume the token
    assert reveals.reveal(token) is not None


def test_tokens_expire_after_ttl():
    clock = FakeClock()
    reveals = RevealStore(ttl=600, clock=clock)
    token = reveals.create([("https://evil.com", "Database")])

    clock.now += 600
    assert reveals.reveal(token) is None
    assert len(reveals) == 0


def test_unknown_token():
    assert RevealStore().reveal("reveal_scam_missing") is None


def test_purge_expired():
    clock = FakeClock()
    reveals = RevealStore(ttl=10, clock=clock)
    reveals.create([("https://a.com", "Database")])
    clock.now += 5
    reveals.create([("https://b.com", "Database")])

    clock.now += 6
    assert reveals.purge_expired() == 1
    assert len(reveals) == 1
