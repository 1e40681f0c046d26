import asyncio
import json

from modelkeeper.config import settings
from modelkeeper.models.asset import AssetDescriptor
from modelkeeper.services.catalog import AssetCatalog
from modelkeeper.services.status_prober import describe
from tests.conftest import EMBED, SELECT_BOTH, VLM


def _place(model_root, relative_path, data=b"weights"):
    path = model_root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_describe_reports_size_of_present_file(model_root):
    descriptor = AssetDescriptor.model_validate(VLM)
    _place(model_root, VLM["relative_path"], b"12345")

    status = describe(descriptor, model_root)
    assert status.exists is True
    assert status.size_bytes == 5
    assert status.path == str(model_root / VLM["relative_path"])


def test_describe_treats_missing_and_empty_files_as_absent(model_root):
    descriptor = AssetDescriptor.model_validate(VLM)
    assert describe(descriptor, model_root).exists is False

    _place(model_root, VLM["relative_path"], b"")
    status = describe(descriptor, model_root)
    assert status.exists is False
    assert status.size_bytes is None


def test_describe_treats_directory_as_absent(model_root):
    descriptor = AssetDescriptor.model_validate(VLM)
    (model_root / VLM["relative_path"]).mkdir(parents=True)
    assert describe(descriptor, model_root).exists is False


def test_get_status_is_stable_without_writes(make_manager, model_root):
    manager = make_manager([VLM, EMBED], config=SELECT_BOTH)
    _place(model_root, VLM["relative_path"])

    first = asyncio.run(manager.get_status())
    second = asyncio.run(manager.get_status())
    assert [(a.exists, a.size_bytes) for a in first.assets] == [
        (a.exists, a.size_bytes) for a in second.assets
    ]


def test_unselected_optional_asset_does_not_block_readiness(make_manager, model_root):
    whisper = {
        "id": "whisper-x",
        "label": "Whisper",
        "relative_path": "whisper/x.bin",
        "url": "https://models.test/x.bin",
        "role": "speech",
        "optional": True,
    }
    manager = make_manager([VLM, EMBED, whisper], config=SELECT_BOTH)
    _place(model_root, VLM["relative_path"])
    _place(model_root, EMBED["relative_path"])

    status = asyncio.run(manager.get_status())
    assert status.ready is True
    assert status.missing == []


def test_unselected_required_asset_does_not_block_readiness(make_manager, model_root):
    other = {**EMBED, "id": "embed-big", "relative_path": "embed-big.gguf"}
    manager = make_manager([VLM, EMBED, other], config=SELECT_BOTH)
    _place(model_root, VLM["relative_path"])
    _place(model_root, EMBED["relative_path"])

    assert asyncio.run(manager.get_status()).ready is True


def test_selected_missing_asset_blocks_readiness(make_manager, model_root):
    manager = make_manager([VLM, EMBED], config=SELECT_BOTH)
    _place(model_root, VLM["relative_path"])

    status = asyncio.run(manager.get_status())
    assert status.ready is False
    assert status.missing == ["embed"]


def test_mmproj_companion_counts_as_selected(make_manager, model_root):
    vlm = {**VLM, "mmproj_id": "vlm-mmproj"}
    mmproj = {
        "id": "vlm-mmproj",
        "label": "Projector",
        "relative_path": "qwenvl/mmproj.gguf",
        "url": "https://models.test/mmproj.gguf",
        "role": "vision",
    }
    manager = make_manager([vlm, mmproj, EMBED], config=SELECT_BOTH)
    _place(model_root, VLM["relative_path"])
    _place(model_root, EMBED["relative_path"])

    status = asyncio.run(manager.get_status())
    assert status.missing == ["vlm-mmproj"]
    assert {a.id: a.mmproj_id for a in status.assets}["vlm"] == "vlm-mmproj"


def test_unknown_role_id_falls_back_to_default(make_manager, model_root):
    manager = make_manager([VLM, EMBED], config={"active_model_id": "gone", "active_embedding_model_id": "embed"})
    asyncio.run(manager.initialize())

    from modelkeeper.models.asset import AssetRole

    assert manager.resolve_role_id(AssetRole.VISION) == "vlm"
    assert "vlm" in manager.selected_ids()


def test_missing_catalog_yields_empty_not_ready_summary(tmp_path, make_manager):
    manager = make_manager([VLM])
    (tmp_path / "models.config.json").unlink()

    status = asyncio.run(manager.get_status())
    assert status.assets == []
    assert status.ready is False
    assert manager.catalog.load_error


def test_malformed_catalog_is_treated_as_empty(tmp_path, model_root):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    catalog = AssetCatalog(path, model_root)

    assert asyncio.run(catalog.load()) == []
    assert catalog.load_error is not None


def test_catalog_skips_duplicate_ids_and_paths(tmp_path, model_root):
    path = tmp_path / "dupes.json"
    path.write_text(json.dumps({"models": [
        VLM,
        {**VLM, "label": "Same id"},
        {**EMBED, "relative_path": VLM["relative_path"]},
        EMBED,
    ]}))
    catalog = AssetCatalog(path, model_root)

    loaded = asyncio.run(catalog.load())
    assert [d.id for d in loaded] == ["vlm", "embed"]
    assert loaded[0].label == "Vision model"


def test_catalog_accepts_legacy_field_names(tmp_path, model_root):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps({"models": [{
        "id": "vlm",
        "label": "Vision model",
        "relativePath": "qwenvl/vlm.gguf",
        "url": "https://models.test/vlm.gguf",
        "type": "vlm",
        "mmprojId": "vlm-mmproj",
    }]}))
    catalog = AssetCatalog(path, model_root)

    (descriptor,) = asyncio.run(catalog.load())
    assert descriptor.role.value == "vision"
    assert descriptor.mmproj_id == "vlm-mmproj"
    assert descriptor.relative_path == "qwenvl/vlm.gguf"


def test_shipped_catalog_loads(tmp_path):
    catalog = AssetCatalog(settings.catalog_path, tmp_path)
    descriptors = asyncio.run(catalog.load())
    assert descriptors
    assert catalog.load_error is None
    for d in descriptors:
        if d.mmproj_id:
            assert d.mmproj_id in catalog
