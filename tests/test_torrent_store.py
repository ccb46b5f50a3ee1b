import asyncio
from unittest.mock import AsyncMock

import pytest
from fakes import FakeAggregator, file_byte

from ncore_stream.core.torrent_store import TorrentStore
from ncore_stream.exceptions import TorrentParseError, TransferError
from ncore_stream.models.torrent import ByteRange
from ncore_stream.storage.state import PersistedState


@pytest.fixture
def store(fake_engine, torrent_dirs):
    return TorrentStore(
        fake_engine,
        PersistedState(torrent_dirs["addon"] / "torrents.json"),
        torrents_dir=torrent_dirs["torrents"],
        downloads_dir=torrent_dirs["downloads"],
    )


@pytest.mark.asyncio
async def test_add_registers_and_persists(store, fake_engine, write_torrent, torrent_dirs):
    path = write_torrent("movie.mkv", length=5000)
    resource = await store.add(path)

    assert store.get(resource.info_hash) is resource
    assert resource.total_length == 5000
    assert resource.download_path == torrent_dirs["downloads"] / resource.info_hash
    assert store.state.get(resource.info_hash) == path.absolute()
    assert len(fake_engine.add_calls) == 1


@pytest.mark.asyncio
async def test_concurrent_adds_share_one_registration(store, fake_engine, write_torrent):
    path = write_torrent("movie.mkv", length=5000)
    first, second = await asyncio.gather(store.add(path), store.add(path))
    assert first is second
    assert len(fake_engine.add_calls) == 1
    assert len(store) == 1


@pytest.mark.asyncio
async def test_add_is_idempotent(store, fake_engine, write_torrent):
    path = write_torrent("movie.mkv", length=5000)
    first = await store.add(path)
    assert await store.add(path) is first
    assert len(fake_engine.add_calls) == 1


@pytest.mark.asyncio
async def test_same_torrent_under_another_file_name_is_reused(
    store, fake_engine, write_torrent
):
    first = await store.add(write_torrent("movie.mkv", length=5000))
    copy = await store.add(
        write_torrent("movie.mkv", filename="copy.torrent", length=5000)
    )
    assert copy is first
    assert len(fake_engine.add_calls) == 1


@pytest.mark.asyncio
async def test_invalid_torrent_file_is_rejected(store, torrent_dirs):
    path = torrent_dirs["torrents"] / "broken.torrent"
    path.write_bytes(b"garbage")
    with pytest.raises(TorrentParseError):
        await store.add(path)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_delete_removes_everything(store, fake_engine, write_torrent):
    path = write_torrent("movie.mkv", length=5000)
    resource = await store.add(path)
    (resource.download_path / "movie.mkv").write_bytes(b"partial")

    assert await store.delete(resource.info_hash) is True

    assert store.get(resource.info_hash) is None
    assert resource.info_hash not in store.state
    assert not path.exists()
    assert not resource.download_path.exists()
    assert fake_engine.removed == [resource.info_hash]


@pytest.mark.asyncio
async def test_delete_unknown_is_a_no_op(store, fake_engine):
    assert await store.delete("f" * 40) is False
    assert fake_engine.removed == []


@pytest.mark.asyncio
async def test_racing_deletes_remove_once(store, fake_engine, write_torrent):
    resource = await store.add(write_torrent("movie.mkv", length=5000))
    info_hash = resource.info_hash

    # Both deletes pass the lookup before either reaches the state file.
    async with store.state._lock:
        first = asyncio.create_task(store.delete(info_hash))
        second = asyncio.create_task(store.delete(info_hash))
        await asyncio.sleep(0)

    assert await asyncio.gather(first, second) == [True, False]
    assert store.get(info_hash) is None
    assert fake_engine.removed == [info_hash]


@pytest.mark.asyncio
async def test_load_all_restores_prunes_and_adopts(store, write_torrent, torrent_dirs):
    tracked = write_torrent("tracked.mkv", length=100)
    untracked = write_torrent("untracked.mkv", length=200)
    (torrent_dirs["torrents"] / "broken.torrent").write_bytes(b"garbage")

    seed_state = PersistedState(store.state.state_file)
    await seed_state.set("0" * 40, torrent_dirs["torrents"] / "gone.torrent")
    await seed_state.set("1" * 40, tracked.absolute())

    loaded = await store.load_all()

    assert loaded == 2
    assert "0" * 40 not in store.state
    names = sorted(r.name for r in store.resources())
    assert names == ["tracked.mkv", "untracked.mkv"]
    assert store.state.find_by_path(untracked.absolute()) is not None


@pytest.mark.asyncio
async def test_iter_range_yields_requested_bytes(store, write_torrent):
    resource = await store.add(write_torrent("movie.mkv", length=5000))
    chunks = [
        chunk
        async for chunk in store.iter_range(resource, 0, ByteRange(1000, 2000), 300)
    ]
    data = b"".join(chunks)
    assert len(data) == 1001
    assert data == bytes(file_byte(i) for i in range(1000, 2001))
    assert max(len(c) for c in chunks) == 300


@pytest.mark.asyncio
async def test_iter_range_fails_on_short_read(store, fake_engine, write_torrent):
    resource = await store.add(write_torrent("movie.mkv", length=5000))
    fake_engine.read = AsyncMock(side_effect=[b"x" * 300, b""])

    received = []
    with pytest.raises(TransferError):
        async for chunk in store.iter_range(resource, 0, ByteRange(0, 999), 300):
            received.append(chunk)
    assert received == [b"x" * 300]


@pytest.mark.asyncio
async def test_prioritize_forwards_window(store, fake_engine, write_torrent):
    resource = await store.add(write_torrent("movie.mkv", length=5000))
    await store.prioritize(resource, 0, 1000, 400)
    assert fake_engine.prioritized == [(resource.info_hash, 0, 1000, 400)]


@pytest.mark.asyncio
async def test_delete_unnecessary_deletes_only_active(store, write_torrent):
    keep = await store.add(write_torrent("keep.mkv", length=10))
    drop = await store.add(write_torrent("drop.mkv", length=10))
    source = FakeAggregator(removable=[drop.info_hash, "e" * 40])

    assert await store.delete_unnecessary(source) == 1
    assert store.get(drop.info_hash) is None
    assert store.get(keep.info_hash) is keep


@pytest.mark.asyncio
async def test_delete_unnecessary_ignores_repeated_hashes(store, write_torrent):
    drop = await store.add(write_torrent("drop.mkv", length=10))
    source = FakeAggregator(removable=[drop.info_hash, drop.info_hash.upper()])

    assert await store.delete_unnecessary(source) == 1
    assert store.get(drop.info_hash) is None


@pytest.mark.asyncio
async def test_stats(store, write_torrent):
    resource = await store.add(write_torrent("movie.mkv", length=2048))
    stats = await store.stats()
    assert stats[0].to_dict() == {
        "hash": resource.info_hash,
        "name": "movie.mkv",
        "progress": "50.00%",
        "size": "2.0 KB",
        "downloaded": "1.0 KB",
    }
