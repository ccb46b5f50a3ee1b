from fakes import make_candidate

from ncore_stream.core.stream_service import (
    RECOMMENDED_MARKER,
    SPECULATIVE_MARKER,
    StreamService,
)


def test_rank_orders_confirmed_first_then_seeders_then_size():
    speculative = make_candidate(source_id="1", seeders=500, is_speculative=True)
    few_seeders = make_candidate(source_id="2", seeders=3)
    many_small = make_candidate(source_id="3", seeders=50, size=100)
    many_large = make_candidate(source_id="4", seeders=50, size=900)

    ranked = StreamService.rank([speculative, few_seeders, many_small, many_large])
    assert [c.source_id for c in ranked] == ["4", "3", "2", "1"]


def test_first_descriptor_is_recommended():
    service = StreamService("http://localhost:4000/")
    descriptors = service.to_descriptors(
        [make_candidate(source_id="1", seeders=1), make_candidate(source_id="2", seeders=9)]
    )
    assert descriptors[0].recommended is True
    assert descriptors[0].name.startswith(RECOMMENDED_MARKER)
    assert descriptors[1].recommended is False
    assert RECOMMENDED_MARKER not in descriptors[1].name
    assert descriptors[0].url.endswith("/stream/play/ncore/2/" + "a" * 40 + "/0")


def test_descriptor_url_and_hints():
    service = StreamService("http://host:4000")
    candidate = make_candidate(
        source_id="77",
        info_hash="b" * 40,
        files=(
            {"path": "Pack/readme.txt", "length": 1},
            {"path": "Pack/Show.S01E02.mkv", "length": 2048},
        ),
        media_file_index=1,
    )
    descriptor = service.to_descriptor(candidate)
    assert descriptor.url == f"http://host:4000/stream/play/ncore/77/{'b' * 40}/1"
    assert descriptor.behaviorHints.notWebReady is True
    assert descriptor.behaviorHints.bingeGroup == "ncore|hd"
    assert "Show.S01E02.mkv" in descriptor.title
    assert "2.0 KB" in descriptor.title


def test_speculative_descriptor_is_marked():
    service = StreamService("http://host:4000")
    descriptor = service.to_descriptor(make_candidate(is_speculative=True))
    assert descriptor.title.startswith(SPECULATIVE_MARKER)


def test_empty_candidates():
    assert StreamService("http://host").to_descriptors([]) == []
