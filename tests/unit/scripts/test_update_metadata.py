"""Tests for the update-metadata script."""
import dataclasses
from unittest.mock import Mock, patch

import pytest
from PIL import Image
from solders.keypair import Keypair

from tokenmint.core.constants import TOKEN_METADATA_PROGRAM_ID
from tokenmint.scripts import update_metadata as script
from tokenmint.services.metadata import (
    METADATA_HEAD,
    UPDATE_METADATA_ACCOUNT_ARGS_V2,
    MetadataError,
    find_metadata_pda,
)


OLD_JSON = {
    "name": "Token Name",
    "symbol": "SYMBOL",
    "description": "Old description",
    "image": "https://old/img.png",
    "properties": {"files": [{"uri": "https://old/img.png", "type": "image/png"}]},
    "attributes": [{"trait_type": "tier", "value": "gold"}],
}


@pytest.fixture
def mint():
    return Keypair().pubkey()


@pytest.fixture
def storage():
    storage = Mock()
    storage.upload.return_value = "https://ipfs/img"
    storage.upload_json.return_value = "https://ipfs/meta"
    return storage


def _metadata_account(update_authority, mint, *, is_mutable=True):
    raw = METADATA_HEAD.build(
        {
            "key": 4,
            "update_authority": bytes(update_authority),
            "mint": bytes(mint),
            "name": "Token Name".ljust(32, "\x00"),
            "symbol": "SYMBOL".ljust(10, "\x00"),
            "uri": "https://old/m.json".ljust(200, "\x00"),
            "seller_fee_basis_points": 0,
            "creators": None,
            "primary_sale_happened": False,
            "is_mutable": is_mutable,
        }
    )
    return Mock(value=Mock(owner=TOKEN_METADATA_PROGRAM_ID, data=raw))


def _sent_update_args(mock_client):
    (txn,), _ = mock_client.send_transaction.call_args
    ix = txn.message.instructions[0]
    return UPDATE_METADATA_ACCOUNT_ARGS_V2.parse(bytes(ix.data)[1:])


def test_update_metadata_changes_only_requested_fields(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)

    out = script.update_metadata(
        mock_client, payer, mint, storage=None, cfg=cfg, seller_fee_bps=250
    )

    assert out["name"] == "Token Name"
    assert out["symbol"] == "SYMBOL"
    assert out["metadata_uri"] == "https://old/m.json"
    assert out["metadata"] == str(find_metadata_pda(mint)[0])
    args = _sent_update_args(mock_client)
    assert args.data.seller_fee_basis_points == 250
    assert args.data.uri == "https://old/m.json"
    assert args.update_authority is None


def test_update_metadata_rename_reuploads_json(mock_client, payer, cfg, mint, storage):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)

    with patch.object(script, "fetch_offchain_metadata", return_value=OLD_JSON) as fetch:
        out = script.update_metadata(
            mock_client, payer, mint, storage=storage, cfg=cfg, name="New Name"
        )

    fetch.assert_called_once_with("https://old/m.json", timeout=cfg.STORAGE_TIMEOUT)
    storage.upload.assert_not_called()
    meta = storage.upload_json.call_args[0][0]
    assert meta["name"] == "New Name"
    assert meta["symbol"] == "SYMBOL"
    assert meta["image"] == "https://old/img.png"
    assert meta["description"] == "Old description"
    assert meta["attributes"] == [{"trait_type": "tier", "value": "gold"}]
    assert out["metadata_uri"] == "https://ipfs/meta"
    assert _sent_update_args(mock_client).data.name == "New Name"


def test_update_metadata_description_only(mock_client, payer, cfg, mint, storage):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)

    with patch.object(script, "fetch_offchain_metadata", return_value=OLD_JSON):
        out = script.update_metadata(
            mock_client, payer, mint, storage=storage, cfg=cfg,
            description="Brand new description",
        )

    meta = storage.upload_json.call_args[0][0]
    assert meta["description"] == "Brand new description"
    assert meta["image"] == "https://old/img.png"
    assert meta["name"] == "Token Name"
    assert out["image_uri"] == "https://old/img.png"
    args = _sent_update_args(mock_client)
    assert args.data.uri == "https://ipfs/meta"
    assert args.data.name == "Token Name"


def test_update_metadata_requires_storage_for_json_changes(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    with pytest.raises(ValueError, match="storage driver"):
        script.update_metadata(
            mock_client, payer, mint, storage=None, cfg=cfg, description="x"
        )
    mock_client.send_transaction.assert_not_called()


def test_update_metadata_rejects_json_without_image(mock_client, payer, cfg, mint, storage):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    with patch.object(script, "fetch_offchain_metadata", return_value={"name": "Token Name"}):
        with pytest.raises(MetadataError, match="has no image"):
            script.update_metadata(
                mock_client, payer, mint, storage=storage, cfg=cfg, symbol="NEW"
            )
    storage.upload_json.assert_not_called()


def test_update_metadata_uploads_new_image(mock_client, payer, cfg, mint, storage, tmp_path):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    image = tmp_path / "new.png"
    Image.new("RGB", (2, 2)).save(image, "PNG")

    with patch.object(script, "fetch_offchain_metadata") as fetch:
        out = script.update_metadata(
            mock_client, payer, mint, storage=storage, cfg=cfg, image=str(image),
            description="Updated",
        )

    fetch.assert_not_called()
    assert out["image_uri"] == "https://ipfs/img"
    assert out["metadata_uri"] == "https://ipfs/meta"
    meta = storage.upload_json.call_args[0][0]
    assert meta["name"] == "Token Name"
    assert meta["description"] == "Updated"


def test_update_metadata_new_image_keeps_description(
    mock_client, payer, cfg, mint, storage, tmp_path
):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    image = tmp_path / "new.png"
    Image.new("RGB", (2, 2)).save(image, "PNG")

    with patch.object(script, "fetch_offchain_metadata", return_value=OLD_JSON):
        out = script.update_metadata(
            mock_client, payer, mint, storage=storage, cfg=cfg, image=str(image)
        )

    meta = storage.upload_json.call_args[0][0]
    assert meta["description"] == "Old description"
    assert meta["image"] == "https://ipfs/img"
    assert meta["properties"]["files"][0]["uri"] == "https://ipfs/img"
    assert meta["attributes"] == [{"trait_type": "tier", "value": "gold"}]
    assert out["image_uri"] == "https://ipfs/img"


def test_update_metadata_explicit_uri_wins_over_image(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    storage = Mock()

    out = script.update_metadata(
        mock_client, payer, mint, storage=storage, cfg=cfg,
        image="ignored.png", uri="https://new/m.json",
    )

    assert out["metadata_uri"] == "https://new/m.json"
    storage.upload.assert_not_called()


def test_update_metadata_rejects_immutable(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(
        payer.pubkey(), mint, is_mutable=False
    )
    with pytest.raises(MetadataError, match="immutable"):
        script.update_metadata(mock_client, payer, mint, storage=None, cfg=cfg, name="X")
    mock_client.send_transaction.assert_not_called()


def test_update_metadata_rejects_foreign_authority(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(Keypair().pubkey(), mint)
    with pytest.raises(MetadataError, match="update authority"):
        script.update_metadata(mock_client, payer, mint, storage=None, cfg=cfg, name="X")


def test_update_metadata_rejects_noop(mock_client, payer, cfg, mint):
    mock_client.get_account_info.return_value = _metadata_account(payer.pubkey(), mint)
    with pytest.raises(MetadataError, match="Nothing to update"):
        script.update_metadata(
            mock_client, payer, mint, storage=None, cfg=cfg, name="Token Name"
        )


# ---------------------
# CLI
# ---------------------

def test_main_rejects_bad_mint():
    with pytest.raises(SystemExit, match="not a valid address"):
        script.main(["--mint", "not-a-key"])


def test_main_prints_explorer_link(capsys, payer, mint):
    storage = Mock()
    with patch.object(script, "get_client"), patch.object(
        script, "initialize_keypair", return_value=payer
    ), patch.object(script, "make_storage", return_value=storage), patch.object(
        script, "update_metadata", return_value={"explorer": "https://explorer/tx"}
    ) as update:
        script.main(["--mint", str(mint), "--symbol", "NEW"])

    assert "Transaction: https://explorer/tx" in capsys.readouterr().out
    assert update.call_args.args[2] == mint
    assert update.call_args.kwargs["symbol"] == "NEW"
    assert update.call_args.kwargs["storage"] is storage


@pytest.mark.parametrize(
    "flags",
    [["--description", "New"], ["--image", "new.png"], ["--name", "New"]],
)
def test_main_builds_storage_for_json_changes(payer, mint, flags):
    storage = Mock()
    with patch.object(script, "get_client"), patch.object(
        script, "initialize_keypair", return_value=payer
    ), patch.object(script, "make_storage", return_value=storage), patch.object(
        script, "update_metadata", return_value={"explorer": "t"}
    ) as update:
        script.main(["--mint", str(mint), *flags])

    assert update.call_args.kwargs["storage"] is storage


@pytest.mark.parametrize(
    "flags",
    [["--seller-fee-bps", "100"], ["--description", "New", "--uri", "https://new/m.json"]],
)
def test_main_skips_storage_without_uploads(payer, mint, flags):
    with patch.object(script, "get_client"), patch.object(
        script, "initialize_keypair", return_value=payer
    ), patch.object(script, "make_storage") as make, patch.object(
        script, "update_metadata", return_value={"explorer": "t"}
    ) as update:
        script.main(["--mint", str(mint), *flags])

    make.assert_not_called()
    assert update.call_args.kwargs["storage"] is None


def test_main_exits_with_message_on_failure(payer, mint):
    with patch.object(script, "get_client"), patch.object(
        script, "initialize_keypair", return_value=payer
    ), patch.object(script, "make_storage"), patch.object(
        script, "update_metadata", side_effect=MetadataError("immutable")
    ):
        with pytest.raises(SystemExit) as exc:
            script.main(["--mint", str(mint), "--name", "X"])

    assert str(exc.value) == "update-metadata failed: immutable"


def test_main_reports_bad_log_level(mint, cfg):
    bad = dataclasses.replace(cfg, LOG_LEVEL="verbose")
    with patch.object(script, "resolve_settings", return_value=bad), patch.object(
        script, "get_client"
    ) as get_client:
        with pytest.raises(SystemExit) as exc:
            script.main(["--mint", str(mint), "--seller-fee-bps", "1"])

    assert str(exc.value) == "update-metadata failed: Unknown LOG_LEVEL 'verbose'"
    get_client.assert_not_called()
