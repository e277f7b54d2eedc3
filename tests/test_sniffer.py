import asyncio
import time

import pytest

from ipfssearch.config import SnifferConfig
from ipfssearch.datastore import Key, MapDatastore
from ipfssearch.multiformats import base32_encode, base58_decode, decode_cid
from ipfssearch.sniffer import Sniffer
from ipfssearch.types import Protocol, Resource, SourceType

CID = "QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp"
PEER = "QmeTtFXm42Jb2todcKR538j6qHYxXt6suUzpF3rtT9FPSd"


class FakePublisher:
    def __init__(self):
        self.calls = []
        self.published = asyncio.Event()

    async def publish(self, item, priority):
        self.calls.append((item, priority))
        self.published.set()


class FakeFactory:
    def __init__(self, publisher, failures=0):
        self.publisher = publisher
        self.failures = failures
        self.calls = 0

    async def new_publisher(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("no broker")
        return self.publisher


def make_key(cid_str, peer_str):
    encoded_cid = base32_encode(decode_cid(cid_str).to_bytes())
    encoded_peer = base32_encode(base58_decode(peer_str))
    return Key(f"/providers/{encoded_cid}/{encoded_peer}")


def time_to_val(t):
    value = int(t * 1e9)
    zigzag = (value << 1) ^ (value >> 63)
    out = bytearray()
    while True:
        byte = zigzag & 0x7F
        zigzag >>= 7
        if zigzag:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


async def _cancel(task):
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_new_wraps_datastore():
    ds = MapDatastore()
    sniffer = Sniffer(SnifferConfig(), ds, FakeFactory(FakePublisher()))
    wrapped = sniffer.batching()

    wrapped.put(Key("/test"), b"test")

    assert wrapped is not ds
    assert ds.get(Key("/test")) == b"test"


@pytest.mark.asyncio
async def test_sniff_cancel():
    factory = FakeFactory(FakePublisher())
    sniffer = Sniffer(SnifferConfig(), MapDatastore(), factory)
    task = asyncio.create_task(sniffer.sniff())
    await asyncio.sleep(0.05)

    await _cancel(task)
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_handle_to_publish():
    publisher = FakePublisher()
    factory = FakeFactory(publisher)
    sniffer = Sniffer(SnifferConfig(), MapDatastore(), factory)
    wrapped = sniffer.batching()
    task = asyncio.create_task(sniffer.sniff())

    await asyncio.sleep(0.1)
    wrapped.put(make_key(CID, PEER), time_to_val(time.time()))

    await asyncio.wait_for(publisher.published.wait(), 5)
    await _cancel(task)

    item, priority = publisher.calls[0]
    assert item.resource == Resource(protocol=Protocol.IPFS, id=CID)
    assert item.source is SourceType.SNIFFER
    assert priority == 9
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_non_provider_keys_are_not_published():
    publisher = FakePublisher()
    sniffer = Sniffer(SnifferConfig(), MapDatastore(), FakeFactory(publisher))
    wrapped = sniffer.batching()
    task = asyncio.create_task(sniffer.sniff())

    await asyncio.sleep(0.1)
    wrapped.put(Key("/test"), b"test")
    await asyncio.sleep(0.1)
    await _cancel(task)

    assert publisher.calls == []


@pytest.mark.asyncio
async def test_sniff_restarts_after_error():
    publisher = FakePublisher()
    factory = FakeFactory(publisher, failures=1)
    sniffer = Sniffer(SnifferConfig(), MapDatastore(), factory)
    sniffer.restart_delay = 0.01
    wrapped = sniffer.batching()
    task = asyncio.create_task(sniffer.sniff())

    for _ in range(100):
        if factory.calls >= 2:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.1)
    wrapped.put(make_key(CID, PEER), time_to_val(time.time()))

    await asyncio.wait_for(publisher.published.wait(), 5)
    await _cancel(task)

    assert factory.calls == 2
    assert publisher.calls[0][0].resource.id == CID