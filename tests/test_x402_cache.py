# tests/test_x402_cache.py
"""
Unit tests for the deposit address cache.
"""
import threading

from conftest import FakeClock
from paygate.x402.cache import AddressCache, DepositAddressRecord


def make_record(address="0xabc", reference="pi_1"):
    return DepositAddressRecord(
        address=address,
        expected_amount=10000,
        provisioning_reference=reference,
        amount_minor=1,
    )


class TestPutGet:
    """Test storing and looking up records."""

    def test_get_returns_stored_record(self, clock):
        """A stored record is returned as-is."""
        cache = AddressCache(clock=clock)
        record = make_record()
        cache.put("0xabc", record)

        assert cache.get("0xabc") is record

    def test_missing_returns_none(self, clock):
        cache = AddressCache(clock=clock)
        assert cache.get("0xnothing") is None

    def test_keys_are_not_normalized(self, clock):
        """Callers lower-case addresses; the cache compares keys exactly."""
        cache = AddressCache(clock=clock)
        cache.put("0xabc", make_record())

        assert cache.get("0xABC") is None

    def test_put_replaces_record(self, clock):
        cache = AddressCache(clock=clock)
        cache.put("0xabc", make_record(reference="pi_1"))
        cache.put("0xabc", make_record(reference="pi_2"))

        assert cache.get("0xabc").provisioning_reference == "pi_2"
        assert len(cache) == 1

    def test_clear(self, clock):
        cache = AddressCache(clock=clock)
        cache.put("0xabc", make_record())
        cache.clear()

        assert cache.get("0xabc") is None
        assert len(cache) == 0

    def test_ttl_property(self):
        assert AddressCache(ttl_seconds=42).ttl_seconds == 42


class TestExpiry:
    """Test TTL expiry."""

    def test_live_before_ttl(self, clock):
        """Records are live until the TTL elapses."""
        cache = AddressCache(ttl_seconds=300, clock=clock)
        cache.put("0xabc", make_record())
        clock.advance(299)

        assert cache.get("0xabc") is not None

    def test_expired_after_ttl(self, clock):
        """An expired record is indistinguishable from a missing one."""
        cache = AddressCache(ttl_seconds=300, clock=clock)
        cache.put("0xabc", make_record())
        clock.advance(300)

        assert cache.get("0xabc") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, clock):
        """put() accepts a TTL overriding the default."""
        cache = AddressCache(ttl_seconds=300, clock=clock)
        cache.put("0xshort", make_record("0xshort"), ttl=10)
        cache.put("0xlong", make_record("0xlong"))
        clock.advance(11)

        assert cache.get("0xshort") is None
        assert cache.get("0xlong") is not None

    def test_len_counts_live_entries(self, clock):
        cache = AddressCache(ttl_seconds=300, clock=clock)
        cache.put("0xa", make_record("0xa"), ttl=10)
        cache.put("0xb", make_record("0xb"))
        clock.advance(20)

        assert len(cache) == 1

    def test_sweep_drops_expired_entries(self):
        """Expired entries are removed on the next put after the check period."""
        clock = FakeClock()
        cache = AddressCache(ttl_seconds=10, check_period_seconds=60, clock=clock)
        cache.put("0xold", make_record("0xold"))
        clock.advance(61)
        cache.put("0xnew", make_record("0xnew"))

        assert "0xold" not in cache._entries
        assert "0xnew" in cache._entries

    def test_no_sweep_within_check_period(self):
        clock = FakeClock()
        cache = AddressCache(ttl_seconds=10, check_period_seconds=60, clock=clock)
        cache.put("0xold", make_record("0xold"))
        clock.advance(30)
        cache.put("0xnew", make_record("0xnew"))

        # Expired but not yet swept
        assert "0xold" in cache._entries
        assert cache.get("0xold") is None


class TestConcurrency:
    """Test concurrent access."""

    def test_concurrent_puts(self):
        """Concurrent writers never lose records."""
        cache = AddressCache(ttl_seconds=300)

        def writer(start):
            for i in range(start, start + 50):
                cache.put(f"0x{i:040x}", make_record(f"0x{i:040x}"))

        threads = [threading.Thread(target=writer, args=(n * 50,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 400
        assert cache.get(f"0x{123:040x}").address == f"0x{123:040x}"
