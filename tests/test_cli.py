from __future__ import annotations

from pathlib import Path

import allure
import pytest
from click.testing import CliRunner
from PIL import Image

from studio_batch.main import studio_batch
from studio_batch.orchestrator.gateway import MISSING_CREDENTIALS_MESSAGE

pytestmark = [
    allure.epic("Batch CLI"),
    allure.feature("Run Command"),
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("STUDIO_BATCH_API_KEY", "GEMINI_API_KEY", "STUDIO_BATCH_OUTPUT_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STUDIO_BATCH_OUTPUT_SIZE", "64")


def _write_image(path: Path, color: tuple[int, int, int] = (180, 150, 120)) -> Path:
    Image.new("RGB", (40, 30), color).save(path)
    return path


def test_tools_lists_tools_and_variant_kinds() -> None:
    result = CliRunner().invoke(studio_batch, ["tools"])

    assert result.exit_code == 0, result.output
    assert "Tools:" in result.output
    assert "scene" in result.output
    assert "--scene (required)" in result.output
    assert "macro_detail" in result.output


def test_run_writes_canonical_outputs(tmp_path: Path) -> None:
    first = _write_image(tmp_path / "left.png")
    second = _write_image(tmp_path / "right.jpg")
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        ["run", "gloves", str(first), str(second), "--out-dir", str(out_dir), "--transport", "echo"],
    )

    assert result.exit_code == 0, result.output
    assert "Total: 2, completed: 2, failed: 0, pending: 0" in result.output
    for name in ("left_glove.jpg", "right_glove.jpg"):
        with Image.open(out_dir / name) as image:
            assert image.format == "JPEG"
            assert image.size == (64, 64)


def test_run_with_reference_reports_it(tmp_path: Path) -> None:
    reference = _write_image(tmp_path / "style.png", (240, 230, 200))
    target = _write_image(tmp_path / "hand.png")
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        [
            "run",
            "gloves",
            str(target),
            "--reference",
            str(reference),
            "--out-dir",
            str(out_dir),
            "--transport",
            "echo",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Style reference ready: style.png" in result.output
    assert (out_dir / "style_glove.jpg").exists()
    assert (out_dir / "hand_glove.jpg").exists()


def test_run_ecommerce_spawns_requested_variants(tmp_path: Path) -> None:
    product = _write_image(tmp_path / "rosary.png")
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        [
            "run",
            "ecommerce",
            str(product),
            "--variant",
            "macro_detail",
            "--variant",
            "lifestyle_table",
            "--out-dir",
            str(out_dir),
            "--transport",
            "echo",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Total: 3, completed: 3" in result.output
    assert (out_dir / "rosary_flatlay.jpg").exists()
    assert (out_dir / "rosary_GalleryMacro.jpg").exists()
    assert (out_dir / "rosary_GalleryLifestyle.jpg").exists()


def test_run_scene_composes_each_product(tmp_path: Path) -> None:
    scene = _write_image(tmp_path / "room.png", (20, 60, 20))
    product = _write_image(tmp_path / "bracelet.png")
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        [
            "run",
            "scene",
            str(product),
            "--scene",
            str(scene),
            "--out-dir",
            str(out_dir),
            "--transport",
            "echo",
        ],
    )

    assert result.exit_code == 0, result.output
    assert (out_dir / "bracelet_composed.jpg").exists()


def test_run_scene_without_scene_is_a_usage_error(tmp_path: Path) -> None:
    product = _write_image(tmp_path / "bracelet.png")

    result = CliRunner().invoke(
        studio_batch,
        ["run", "scene", str(product), "--out-dir", str(tmp_path), "--transport", "echo"],
    )

    assert result.exit_code != 0
    assert "requires --scene" in result.output


def test_run_rejects_variants_for_tools_without_them(tmp_path: Path) -> None:
    product = _write_image(tmp_path / "bracelet.png")

    result = CliRunner().invoke(
        studio_batch,
        [
            "run",
            "variants",
            str(product),
            "--variant",
            "context",
            "--out-dir",
            str(tmp_path),
            "--transport",
            "echo",
        ],
    )

    assert result.exit_code != 0
    assert "does not support variants" in result.output


def test_unreadable_input_fails_its_job_and_is_retried(tmp_path: Path) -> None:
    good = _write_image(tmp_path / "good.png")
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not really a png")
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        [
            "run",
            "variants",
            str(good),
            str(broken),
            "--retry-failed",
            "1",
            "--out-dir",
            str(out_dir),
            "--transport",
            "echo",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Retry round 1: 1 job(s)" in result.output
    assert "Failed to load generated image for processing." in result.output
    assert "Total: 2, completed: 1, failed: 1, pending: 0" in result.output
    assert (out_dir / "good_variant.jpg").exists()
    assert not (out_dir / "broken_variant.jpg").exists()


def test_missing_api_key_fails_jobs_without_network(tmp_path: Path) -> None:
    product = _write_image(tmp_path / "ring.png")

    result = CliRunner().invoke(
        studio_batch,
        ["run", "variants", str(product), "--out-dir", str(tmp_path / "out")],
    )

    assert result.exit_code == 0, result.output
    assert MISSING_CREDENTIALS_MESSAGE in result.output
    assert "failed: 1" in result.output


def test_same_file_names_from_different_folders_do_not_overwrite(tmp_path: Path) -> None:
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    first = _write_image(tmp_path / "a" / "ring.png", (250, 0, 0))
    second = _write_image(tmp_path / "b" / "ring.png", (0, 0, 250))
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(
        studio_batch,
        ["run", "variants", str(first), str(second), "--out-dir", str(out_dir), "--transport", "echo"],
    )

    assert result.exit_code == 0, result.output
    assert sorted(path.name for path in out_dir.iterdir()) == [
        "ring_variant-2.jpg",
        "ring_variant.jpg",
    ]
    with Image.open(out_dir / "ring_variant.jpg") as red, Image.open(
        out_dir / "ring_variant-2.jpg",
    ) as blue:
        assert red.getpixel((32, 32))[0] > 200
        assert blue.getpixel((32, 32))[2] > 200


def test_invalid_numeric_setting_is_reported_without_traceback(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("STUDIO_BATCH_MAX_RETRIES", "many")
    product = _write_image(tmp_path / "ring.png")

    result = CliRunner().invoke(
        studio_batch,
        ["run", "variants", str(product), "--out-dir", str(tmp_path), "--transport", "echo"],
    )

    assert result.exit_code == 1
    assert "STUDIO_BATCH_MAX_RETRIES" in result.output
    assert not isinstance(result.exception, ValueError)
