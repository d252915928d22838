import asyncio
import threading

import pytest

from roadguard.specialists.detector import DetectorRegistry


def test_registry_shares_concurrent_loads():
    loads = []

    def factory(model_id):
        loads.append(model_id)
        return object()

    async def main():
        reg = DetectorRegistry(factory)
        a, b, c = await asyncio.gather(reg.get("m1"), reg.get("m1"), reg.get("m2"))
        return a, b, c

    a, b, c = asyncio.run(main())
    assert a is b
    assert a is not c
    assert sorted(loads) == ["m1", "m2"]


def test_registry_forgets_failed_load():
    calls = []

    def factory(model_id):
        calls.append(model_id)
        if len(calls) == 1:
            raise OSError("download failed")
        return "detector"

    async def main():
        reg = DetectorRegistry(factory)
        with pytest.raises(OSError):
            await reg.get("m")
        assert not reg.loaded("m")
        return await reg.get("m")

    assert asyncio.run(main()) == "detector"
    assert len(calls) == 2


def test_registry_drop():
    async def main():
        reg = DetectorRegistry(lambda model_id: model_id.upper())
        await reg.get("m")
        assert reg.drop("m") == "M"
        return reg.loaded("m")

    assert asyncio.run(main()) is False


def test_cancelled_caller_does_not_restart_load():
    loads = []
    go = threading.Event()

    def factory(model_id):
        loads.append(model_id)
        go.wait(2.0)
        return "detector"

    async def main():
        reg = DetectorRegistry(factory)
        first = asyncio.ensure_future(reg.get("m"))
        second = asyncio.ensure_future(reg.get("m"))
        while not loads:
            await asyncio.sleep(0.002)
        first.cancel()
        await asyncio.sleep(0)
        go.set()
        det = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return det, reg.loaded("m")

    det, loaded = asyncio.run(main())
    assert det == "detector"
    assert loaded
    assert loads == ["m"]
