import cv2
import numpy as np
import pytest

from utils.error_tracker import ImageSourceError
from utils.io import (
    image_loader,
    iter_images,
    list_image_files,
    load_yaml,
    save_yaml,
    write_image,
)


def _write(path, value):
    write_image(path, np.full((4, 6), value, np.uint8))


def test_files_grouped_by_extension(tmp_path):
    for name in ("b.png", "a.jpg", "a.png", "c.bmp"):
        _write(tmp_path / name, 10)
    (tmp_path / "notes.txt").write_text("x")
    names = [p.name for p in list_image_files(tmp_path)]
    assert names == ["a.png", "b.png", "c.bmp", "a.jpg"]


def test_missing_folder(tmp_path):
    with pytest.raises(ImageSourceError):
        list_image_files(tmp_path / "nope")


def test_loader_skips_unreadable_and_ends_with_none(tmp_path):
    _write(tmp_path / "0.png", 1)
    (tmp_path / "1.png").write_bytes(b"not an image")
    _write(tmp_path / "2.png", 2)
    load = image_loader(tmp_path)
    first, second = load(), load()
    assert first[0, 0] == 1 and second[0, 0] == 2
    assert load() is None
    assert load() is None


def test_iter_images_pairs(tmp_path):
    _write(tmp_path / "x.bmp", 7)
    pairs = list(iter_images(tmp_path))
    assert len(pairs) == 1
    path, img = pairs[0]
    assert path.name == "x.bmp"
    assert img.shape == (4, 6)


def test_write_image_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "img.png"
    _write(target, 3)
    assert cv2.imread(str(target), cv2.IMREAD_UNCHANGED)[0, 0] == 3


def test_yaml_round_trip(tmp_path):
    data = {"b": 1, "a": [1.5, 2.5]}
    save_yaml(tmp_path / "d" / "x.yaml", data)
    assert load_yaml(tmp_path / "d" / "x.yaml") == data
