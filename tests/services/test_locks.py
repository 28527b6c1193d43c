"""Tests for the per-key lock registry."""

import asyncio

import pytest

from recurra.services.locks import KeyedLock


class TestKeyedLock:
    """Tests for KeyedLock."""

    @pytest.mark.asyncio
    async def test_entry_removed_after_release(self):
        locks = KeyedLock()

        async with locks.hold("a"):
            assert "a" in locks
            assert len(locks) == 1

        assert "a" not in locks
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("shared"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("one"), worker("two"))

        assert order == ["one-in", "one-out", "two-in", "two-out"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                await release.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)

        async with locks.hold("b"):
            assert len(locks) == 2

        release.set()
        await task
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_entry_kept_while_waiters_remain(self):
        """The lock stays registered until the last waiter is done with it."""
        locks = KeyedLock()
        release = asyncio.Event()
        done = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                await release.wait()

        async def waiter():
            async with locks.hold("a"):
                await done.wait()

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)

        release.set()
        await first
        assert "a" in locks

        done.set()
        await second
        assert "a" not in locks

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_many_keys_do_not_accumulate(self):
        locks = KeyedLock()

        for key in range(100):
            async with locks.hold(key):
                pass

        assert len(locks) == 0
