from __future__ import annotations

from schoolsync.application.offline_cache import OfflineCache
from schoolsync.domain.sync_models import OFFLINE_DATA_KEY
from tests.fakes import InMemoryKeyValueStore


def test_save_marca_el_registro_como_creado_offline() -> None:
    cache = OfflineCache(InMemoryKeyValueStore(), clock=lambda: 1_700_000_000_000)

    record = cache.save("students", "s1", {"firstName": "Ada"})

    assert record == {"firstName": "Ada", "offlineCreated": True, "timestamp": 1_700_000_000_000}
    assert cache.get("students", "s1") == record


def test_update_solo_fusiona_registros_existentes(offline_cache) -> None:
    offline_cache.save("students", "s1", {"firstName": "Ada", "lastName": "L"})

    updated = offline_cache.update("students", "s1", {"lastName": "Lovelace"})
    missing = offline_cache.update("students", "s2", {"lastName": "X"})

    assert updated["firstName"] == "Ada"
    assert updated["lastName"] == "Lovelace"
    assert missing is None
    assert offline_cache.get("students", "s2") is None


def test_delete_y_list(offline_cache) -> None:
    offline_cache.save("classes", "c1", {"name": "JSS1"})
    offline_cache.save("classes", "c2", {"name": "JSS2"})

    assert offline_cache.delete("classes", "c1") is True
    assert offline_cache.delete("classes", "c1") is False
    assert [record["name"] for record in offline_cache.list("classes")] == ["JSS2"]
    assert offline_cache.list("students") == []


def test_blob_corrupto_se_trata_como_vacio() -> None:
    store = InMemoryKeyValueStore({OFFLINE_DATA_KEY: "[[["})
    cache = OfflineCache(store)

    assert cache.list("students") == []
    cache.save("students", "s1", {"firstName": "Ada"})
    assert cache.get("students", "s1")["firstName"] == "Ada"


def test_merge_snapshot_prioriza_remoto_y_conserva_locales() -> None:
    cache = OfflineCache(InMemoryKeyValueStore(), clock=lambda: 1_000)
    cache.save("classes", "c1", {"name": "local viejo"})
    cache.save("classes", "c9", {"name": "solo local"})

    merged = cache.merge_snapshot(
        "classes",
        [{"id": "c1", "name": "remoto", "lastUpdated": "2026-01-01T00:00:00+00:00"}],
    )

    by_name = sorted(record["name"] for record in merged)
    assert by_name == ["remoto", "solo local"]
    assert cache.get("classes", "c1")["name"] == "remoto"


def test_merge_snapshot_conserva_el_local_mas_reciente() -> None:
    cache = OfflineCache(InMemoryKeyValueStore(), clock=lambda: 1_900_000_000_000)
    cache.save("students", "s1", {"id": "s1", "firstName": "editado sin conexión"})

    merged = cache.merge_snapshot(
        "students",
        [{"id": "s1", "firstName": "remoto antiguo", "lastUpdated": "2020-01-01T00:00:00Z"}],
    )

    assert [record["firstName"] for record in merged] == ["editado sin conexión"]


def test_edicion_local_de_un_registro_remoto_gana_al_mismo_snapshot() -> None:
    cache = OfflineCache(InMemoryKeyValueStore(), clock=lambda: 2_000_000_000_000)
    remote_document = {"id": "a1", "total": 50, "lastUpdated": "2024-01-01T00:00:00Z"}
    cache.merge_snapshot("assessments", [remote_document])

    cache.update("assessments", "a1", {"total": 90})
    merged = cache.merge_snapshot("assessments", [remote_document])

    assert [record["total"] for record in merged] == [90]
    assert cache.get("assessments", "a1")["total"] == 90
