import pytest

from ipfssearch.datastore import HookedDatastore, Key, MapDatastore


class _Recorder:
    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def __call__(self, key, value, error):
        self.calls.append((key, value, error))
        return self.result


class _FailingStore(MapDatastore):
    def put(self, key, value):
        raise OSError("disk full")


def test_key_cleaning():
    assert str(Key("test")) == "/test"
    assert str(Key("/a/b/")) == "/a/b"
    assert str(Key("//a//b")) == "/a/b"
    assert Key("test") == Key("/test")


def test_key_namespaces():
    assert Key("invalid").namespaces() == ["invalid"]
    assert Key("/providers/abc/def").namespaces() == ["providers", "abc", "def"]
    assert Key("/").namespaces() == []


def test_key_ancestry():
    root = Key("/providers")
    assert root.is_ancestor_of(Key("/providers/abc"))
    assert not root.is_ancestor_of(Key("/providers"))
    assert not root.is_ancestor_of(Key("/providersx/abc"))
    assert Key("/").is_ancestor_of(Key("/a"))


def test_map_datastore():
    ds = MapDatastore()
    k = Key("test")
    ds.put(k, b"test")
    assert ds.has(k)
    assert ds.get(k) == b"test"
    ds.delete(k)
    assert not ds.has(k)
    with pytest.raises(KeyError):
        ds.get(k)


def test_map_batch_applies_on_commit():
    ds = MapDatastore()
    b = ds.batch()
    b.put(Key("a"), b"1")
    assert not ds.has(Key("a"))
    b.commit()
    assert ds.get(Key("a")) == b"1"


def test_put():
    hook = _Recorder()
    inner = MapDatastore()
    ds = HookedDatastore(inner, hook)
    k, v = Key("test"), b"test"

    ds.put(k, v)

    assert hook.calls == [(k, v, None)]
    assert inner.get(k) == v
    assert ds.get(k) == v


def test_batch():
    hook = _Recorder()
    inner = MapDatastore()
    ds = HookedDatastore(inner, hook)
    k, v = Key("test"), b"test"

    b = ds.batch()
    b.put(k, v)
    b.commit()

    assert hook.calls == [(k, v, None)]
    assert inner.get(k) == v


def test_hook_error_is_raised():
    ds = HookedDatastore(MapDatastore(), _Recorder(result=RuntimeError("hook")))
    with pytest.raises(RuntimeError, match="hook"):
        ds.put(Key("a"), b"x")


def test_put_error_passed_to_hook_and_may_be_swallowed():
    hook = _Recorder()
    ds = HookedDatastore(_FailingStore(), hook)
    ds.put(Key("a"), b"x")
    assert ds.has(Key("a")) is False
    assert len(hook.calls) == 1
    key, value, error = hook.calls[0]
    assert key == Key("a")
    assert value == b"x"
    assert isinstance(error, OSError)


def test_delete_passes_through():
    inner = MapDatastore()
    ds = HookedDatastore(inner, _Recorder())
    ds.put(Key("a"), b"x")
    ds.delete(Key("a"))
    assert not ds.has(Key("a"))