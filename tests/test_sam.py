import unittest

import numpy as np

from infer_kit.errors import ShapeMismatchError
from infer_kit.sam import (
    EMBEDDING_SHAPE,
    MULTIMASK_INPUT,
    PRIOR_MASK_SHAPE,
    best_mask_index,
    build_decoder_feeds,
    decode_mask,
    highlight,
)
from infer_kit.tensor import Tensor
from infer_kit.types import Mask, PromptPoint, ResizeRatio


class TestDecodeMask(unittest.TestCase):
    def test_nearest_neighbour_blocks(self) -> None:
        logits = np.array([[[[1.0, -1.0], [-1.0, 1.0]]]], dtype=np.float32)
        mask = decode_mask(logits, 4, 4)
        self.assertEqual((mask.width, mask.height), (4, 4))
        expected = np.array(
            [
                [True, True, False, False],
                [True, True, False, False],
                [False, False, True, True],
                [False, False, True, True],
            ]
        )
        self.assertTrue(np.array_equal(mask.data, expected))
        self.assertEqual(mask.area, 8)

    def test_zero_is_background(self) -> None:
        mask = decode_mask(np.zeros((1, 1, 2, 2), dtype=np.float32), 3, 3)
        self.assertEqual(mask.area, 0)

    def test_downsample_and_non_square_target(self) -> None:
        logits = np.arange(9, dtype=np.float32).reshape(1, 1, 3, 3) - 4.0
        mask = decode_mask(Tensor.from_array("masks", logits), 2, 1)
        # x samples columns 0 and 1 of row 0: values -4, -3
        self.assertTrue(np.array_equal(mask.data, np.array([[False, False]])))

    def test_selects_candidate(self) -> None:
        logits = np.full((1, 3, 2, 2), -1.0, dtype=np.float32)
        logits[0, 2] = 1.0
        self.assertEqual(decode_mask(logits, 2, 2, index=0).area, 0)
        self.assertEqual(decode_mask(logits, 2, 2, index=2).area, 4)
        with self.assertRaises(IndexError):
            decode_mask(logits, 2, 2, index=3)

    def test_bad_shape(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            decode_mask(np.zeros((1, 2, 2), dtype=np.float32), 2, 2)
        with self.assertRaises(ValueError):
            decode_mask(np.zeros((1, 1, 2, 2), dtype=np.float32), 0, 2)


class TestDecoderFeeds(unittest.TestCase):
    def setUp(self) -> None:
        self.embedding = np.zeros(EMBEDDING_SHAPE, dtype=np.float32)
        self.points = [PromptPoint(200, 100, 1), PromptPoint(10, 20, 0)]

    def test_feed_shapes_and_values(self) -> None:
        feeds = build_decoder_feeds(self.embedding, self.points, (400, 200), ResizeRatio(2.0, 2.0))
        self.assertNotIn(MULTIMASK_INPUT, feeds)
        self.assertEqual(feeds["point_coords"].shape, (1, 2, 2))
        self.assertTrue(np.allclose(feeds["point_coords"][0], [[100, 50], [5, 10]]))
        self.assertEqual(feeds["point_labels"].tolist(), [[1.0, 0.0]])
        self.assertEqual(feeds["mask_input"].shape, PRIOR_MASK_SHAPE)
        self.assertEqual(feeds["has_mask_input"].tolist(), [0.0])
        self.assertEqual(feeds["orig_im_size"].tolist(), [200.0, 400.0])
        for name in ("image_embeddings", "point_coords", "point_labels", "mask_input", "has_mask_input"):
            self.assertEqual(feeds[name].dtype, np.float32)

    def test_prior_mask_and_multimask(self) -> None:
        prior = np.ones(PRIOR_MASK_SHAPE, dtype=np.float32)
        feeds = build_decoder_feeds(
            self.embedding, self.points, (400, 200), ResizeRatio(1.0, 1.0), prior_mask=prior, multimask=True
        )
        self.assertEqual(feeds["has_mask_input"].tolist(), [1.0])
        self.assertTrue(np.all(feeds["mask_input"] == 1.0))
        self.assertEqual(feeds[MULTIMASK_INPUT].dtype, np.bool_)
        self.assertEqual(feeds[MULTIMASK_INPUT].tolist(), [True])

    def test_rejects_bad_inputs(self) -> None:
        ratio = ResizeRatio(1.0, 1.0)
        with self.assertRaises(ShapeMismatchError):
            build_decoder_feeds(np.zeros((1, 256, 32, 32), dtype=np.float32), self.points, (4, 4), ratio)
        with self.assertRaises(ShapeMismatchError):
            build_decoder_feeds(self.embedding, self.points, (4, 4), ratio, prior_mask=np.zeros((1, 1, 64, 64)))
        with self.assertRaises(ValueError):
            build_decoder_feeds(self.embedding, [], (4, 4), ratio)


class TestBestMaskIndex(unittest.TestCase):
    def test_argmax(self) -> None:
        self.assertEqual(best_mask_index(np.array([[0.1, 0.9, 0.5]], dtype=np.float32)), 1)

    def test_empty(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            best_mask_index(np.zeros((1, 0), dtype=np.float32))


class TestHighlight(unittest.TestCase):
    def test_background_dimmed_and_floored(self) -> None:
        img = np.array([[[100, 255, 10], [100, 255, 10]]], dtype=np.uint8)  # 1x2
        mask = Mask.from_array(np.array([[True, False]]))
        out = highlight(img, mask)
        self.assertEqual(out.dtype, np.uint8)
        self.assertEqual(out[0, 0].tolist(), [100, 255, 10])
        self.assertEqual(out[0, 1].tolist(), [30, 76, 3])
        # input untouched
        self.assertEqual(img[0, 1].tolist(), [100, 255, 10])

    def test_alpha_channel_preserved(self) -> None:
        img = np.full((1, 1, 4), 200, dtype=np.uint8)
        out = highlight(img, Mask.from_array(np.array([[False]])))
        self.assertEqual(out[0, 0].tolist(), [60, 60, 60, 200])

    def test_size_mismatch(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            highlight(np.zeros((2, 2, 3), dtype=np.uint8), Mask.from_array(np.zeros((3, 3), dtype=bool)))


if __name__ == "__main__":
    unittest.main()
