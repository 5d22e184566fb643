import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from infer_kit.errors import ImageDecodeError
from infer_kit.preprocess import SAM_NORMALIZATION, Normalization, ResizeMode, load_image, preprocess
from infer_kit.resize import pad_square_resize, pad_to_square, stretch_resize


class TestResize(unittest.TestCase):
    def test_pad_to_square_anchors_at_origin(self) -> None:
        img = np.full((50, 100, 3), 200, dtype=np.uint8)  # 100 wide, 50 tall
        padded = pad_to_square(img)
        self.assertEqual(padded.shape, (100, 100, 3))
        self.assertTrue(np.all(padded[:50] == 200))
        self.assertTrue(np.all(padded[50:] == 0))

    def test_pad_to_square_tall_image_pads_right(self) -> None:
        img = np.full((40, 10, 3), 7, dtype=np.uint8)
        padded = pad_to_square(img)
        self.assertEqual(padded.shape, (40, 40, 3))
        self.assertTrue(np.all(padded[:, :10] == 7))
        self.assertTrue(np.all(padded[:, 10:] == 0))

    def test_stretch_ratio_per_axis(self) -> None:
        img = np.zeros((100, 200, 3), dtype=np.uint8)
        resized, ratio = stretch_resize(img, (100, 100))
        self.assertEqual(resized.shape, (100, 100, 3))
        self.assertAlmostEqual(ratio.x, 2.0)
        self.assertAlmostEqual(ratio.y, 1.0)

    def test_pad_square_ratio_uses_square_side(self) -> None:
        img = np.zeros((100, 200, 3), dtype=np.uint8)
        resized, ratio = pad_square_resize(img, (100, 100))
        self.assertEqual(resized.shape, (100, 100, 3))
        self.assertAlmostEqual(ratio.x, 2.0)
        self.assertAlmostEqual(ratio.y, 2.0)


class TestPreprocess(unittest.TestCase):
    def test_stretch_outputs_rgb_chw_scaled(self) -> None:
        img = np.zeros((2, 2, 3), dtype=np.uint8)
        img[:, :] = (10, 20, 30)  # BGR
        img[1, 0] = (255, 0, 51)
        res = preprocess(img, 2, 2, mode="stretch")
        self.assertEqual(res.blob.shape, (1, 3, 2, 2))
        self.assertEqual(res.blob.dtype, np.float32)
        self.assertEqual(res.orig_size, (2, 2))
        self.assertAlmostEqual(float(res.blob[0, 0, 0, 0]), 30 / 255.0, places=6)
        self.assertAlmostEqual(float(res.blob[0, 1, 0, 0]), 20 / 255.0, places=6)
        self.assertAlmostEqual(float(res.blob[0, 2, 0, 0]), 10 / 255.0, places=6)
        # row 1, column 0
        self.assertAlmostEqual(float(res.blob[0, 0, 1, 0]), 51 / 255.0, places=6)
        self.assertAlmostEqual(float(res.blob[0, 2, 1, 0]), 1.0, places=6)

    def test_pad_square_rows_below_source_are_zero_before_normalization(self) -> None:
        img = np.full((50, 100, 3), 200, dtype=np.uint8)
        res = preprocess(img, 100, 100, mode=ResizeMode.PAD_SQUARE)
        self.assertEqual(res.blob.shape, (1, 3, 100, 100))
        self.assertEqual(res.orig_size, (100, 50))
        self.assertAlmostEqual(res.ratio.x, 1.0)
        self.assertAlmostEqual(res.ratio.y, 1.0)
        for c in range(3):
            mean, std = SAM_NORMALIZATION.mean[c], SAM_NORMALIZATION.std[c]
            self.assertTrue(np.allclose(res.blob[0, c, 50:, :], (0.0 - mean) / std, atol=1e-5))
            self.assertTrue(np.allclose(res.blob[0, c, :50, :], (200.0 - mean) / std, atol=1e-5))

    def test_custom_normalization(self) -> None:
        img = np.full((4, 4, 3), 100, dtype=np.uint8)
        norm = Normalization(mean=(100.0, 50.0, 0.0), std=(1.0, 2.0, 4.0))
        res = preprocess(img, 4, 4, normalization=norm)
        self.assertTrue(np.allclose(res.blob[0, 0], 0.0))
        self.assertTrue(np.allclose(res.blob[0, 1], 25.0))
        self.assertTrue(np.allclose(res.blob[0, 2], 25.0))

    def test_float16_blob(self) -> None:
        img = np.full((8, 8, 3), 255, dtype=np.uint8)
        res = preprocess(img, 4, 4, dtype="float16")
        self.assertEqual(res.blob.dtype, np.float16)
        self.assertTrue(np.all(res.blob.astype(np.float32) == 1.0))

    def test_grayscale_array_is_expanded(self) -> None:
        img = np.full((6, 6), 51, dtype=np.uint8)
        res = preprocess(img, 6, 6)
        self.assertTrue(np.allclose(res.blob, 51 / 255.0))


class TestLoadImage(unittest.TestCase):
    def test_decodes_encoded_bytes_and_paths(self) -> None:
        img = np.zeros((5, 7, 3), dtype=np.uint8)
        img[2, 3] = (1, 2, 3)
        ok, buf = cv2.imencode(".png", img)
        self.assertTrue(ok)
        self.assertTrue(np.array_equal(load_image(buf.tobytes()), img))

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "img.png"
            path.write_bytes(buf.tobytes())
            self.assertTrue(np.array_equal(load_image(path), img))
            self.assertTrue(np.array_equal(load_image(str(path)), img))

    def test_undecodable_input_raises(self) -> None:
        with self.assertRaises(ImageDecodeError):
            load_image(b"definitely not an image")
        with self.assertRaises(ImageDecodeError):
            load_image(b"")
        with self.assertRaises(ImageDecodeError):
            load_image(np.zeros((0, 4, 3), dtype=np.uint8))
        with self.assertRaises(ImageDecodeError):
            load_image(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_missing_file_raises_decode_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ImageDecodeError):
                preprocess(Path(tmp) / "missing.jpg", 32, 32)


if __name__ == "__main__":
    unittest.main()
