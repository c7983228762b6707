import unittest

import numpy as np

from trimorph.services.anchors import Anchor, Side
from trimorph.services.config import MorphCfg
from trimorph.services.engine import MorphingEngine, Quality, Role
from trimorph.services.errors import ImageBufferError, ImageIOError
from trimorph.services.project import Project


def _image(seed, height=24, width=32):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)


def _three_anchors():
    return [
        Anchor.between((0, 0), (0, 0)),
        Anchor.between((10, 0), (20, 0)),
        Anchor.between((0, 10), (0, 20)),
    ]


def _grid_anchors():
    return [
        Anchor.between((0, 0), (0, 0)),
        Anchor.between((31, 0), (31, 0)),
        Anchor.between((31, 23), (31, 23)),
        Anchor.between((0, 23), (0, 23)),
        Anchor.between((12, 10), (18, 13)),
    ]


class TestMorphingEngine(unittest.TestCase):

    def setUp(self):
        self.engine = MorphingEngine(MorphCfg(initial_phase=0.0))
        self.source = _image(1)
        self.target = _image(2)

    def _loaded(self, anchors=None):
        self.engine.set_source_image(self.source)
        self.engine.set_target_image(self.target)
        self.engine.set_anchors(anchors if anchors is not None else _grid_anchors())
        return self.engine

    def test_no_anchors_is_pass_through(self):
        # Given
        engine = self._loaded(anchors=[])

        # When
        result = engine.set_phase(0.5)

        # Then
        self.assertEqual(len(engine.mesh), 0)
        np.testing.assert_array_equal(result.source_warped, self.source)
        np.testing.assert_array_equal(result.target_warped, self.target)
        diff = self.target.astype(np.int64) - self.source.astype(np.int64)
        expected = (self.source.astype(np.int64) + np.trunc(diff * 0.5)).astype(np.uint8)
        np.testing.assert_array_equal(result.output, expected)

    def test_three_anchor_midpoint(self):
        # Given
        engine = self._loaded(anchors=_three_anchors())

        # When
        engine.set_phase(0.5)

        # Then
        self.assertEqual(engine.anchors[1].position(0.5), (15.0, 0.0))
        self.assertEqual(len(engine.mesh), 1)
        current = engine.get_triangle_edges(Role.OUTPUT)
        vertices = {tuple(e[:2]) for e in current} | {tuple(e[2:]) for e in current}
        self.assertEqual(vertices, {(0.0, 0.0), (15.0, 0.0), (0.0, 15.0)})

        source_edges = engine.get_triangle_edges(Role.SOURCE)
        vertices = {tuple(e[:2]) for e in source_edges}
        self.assertEqual(vertices, {(0.0, 0.0), (10.0, 0.0), (0.0, 10.0)})

        target_edges = engine.get_triangle_edges(Role.TARGET)
        vertices = {tuple(e[:2]) for e in target_edges}
        self.assertEqual(vertices, {(0.0, 0.0), (20.0, 0.0), (0.0, 20.0)})

    def test_midpoint_warps_move_pixels_towards_each_other(self):
        # Given
        source = np.zeros((24, 32, 4), dtype=np.uint8)
        target = np.zeros((24, 32, 4), dtype=np.uint8)
        source[2, 2] = (255, 0, 0, 255)
        target[5, 5] = (0, 255, 0, 255)
        self.engine.set_source_image(source)
        self.engine.set_target_image(target)
        self.engine.set_anchors(_three_anchors())

        # When
        result = self.engine.set_phase(0.5)

        # Then
        # source triangle grows by 1.5, target triangle shrinks by 0.75
        self.assertEqual(tuple(result.source_warped[3, 3]), (255, 0, 0, 255))
        self.assertEqual(tuple(result.target_warped[3, 3]), (0, 255, 0, 255))
        self.assertEqual(tuple(result.output[3, 3]), (128, 127, 0, 255))
        self.assertEqual(tuple(result.source_warped[2, 2]), (0, 0, 0, 0))
        self.assertEqual(tuple(result.target_warped[5, 5]), (0, 0, 0, 0))

    def test_boundary_phases(self):
        engine = self._loaded()

        first = engine.set_phase(0.0)
        np.testing.assert_array_equal(first.output, first.source_warped)
        np.testing.assert_array_equal(first.source_warped, self.source)

        last = engine.set_phase(1.0)
        np.testing.assert_array_equal(last.output, last.target_warped)
        np.testing.assert_array_equal(last.target_warped, self.target)

    def test_repeated_phase_is_served_from_cache(self):
        # Given
        engine = self._loaded()
        first = engine.set_phase(0.4)
        builds = engine.cache.stats.transform_builds
        self.assertGreater(builds, 0)

        # When
        engine.set_phase(0.7)
        again = engine.set_phase(0.4)

        # Then
        self.assertIs(again, first)
        np.testing.assert_array_equal(again.output, first.output)
        self.assertGreater(engine.cache.stats.result_hits, 0)
        self.assertEqual(engine.cache.phases, [0.0, 0.4, 0.7])

    def test_repeated_phase_builds_no_transforms(self):
        engine = self._loaded()
        engine.set_phase(0.4)
        builds = engine.cache.stats.transform_builds
        stored = engine.cache.transform_count()

        engine.set_phase(0.4)
        engine.set_phase(0.4)

        self.assertEqual(engine.cache.stats.transform_builds, builds)
        self.assertEqual(engine.cache.transform_count(), stored)
        self.assertGreater(engine.cache.transform_count(Side.SOURCE), 0)
        self.assertGreater(engine.cache.transform_count(Side.TARGET), 0)
        self.assertEqual(
            engine.cache.transform_count(Side.SOURCE) + engine.cache.transform_count(Side.TARGET),
            stored,
        )
        self.assertTrue(engine.cache.contains_result(0.4))
        self.assertFalse(engine.cache.contains_result(0.55))

    def test_move_anchor_invalidates(self):
        # Given
        engine = self._loaded()
        before = engine.set_phase(0.5)
        anchor_id = engine.anchors[4].id

        # When
        after = engine.move_anchor(anchor_id, target=(20, 14))

        # Then
        self.assertIsNot(after, before)
        self.assertEqual(engine.cache.phases, [0.5])
        self.assertEqual(engine.get_anchor(anchor_id).target, (20.0, 14.0))
        self.assertEqual(engine.get_anchor(anchor_id).source, (12.0, 10.0))

    def test_quality_and_image_changes_invalidate(self):
        engine = self._loaded()
        engine.set_phase(0.3)
        engine.set_phase(0.6)
        self.assertEqual(len(engine.cache), 3)

        engine.set_quality("high")
        self.assertIs(engine.quality, Quality.HIGH)
        self.assertEqual(engine.cache.phases, [0.6])

        engine.set_phase(0.3)
        engine.set_target_image(_image(3))
        self.assertEqual(engine.cache.phases, [0.3])

    def test_buffers_are_read_only(self):
        engine = self._loaded()
        result = engine.set_phase(0.5)
        for buffer in (result.source_warped, result.target_warped, result.output, engine.get_image(Role.SOURCE)):
            with self.assertRaises(ValueError):
                buffer[0, 0, 0] = 1

    def test_input_images_are_copied(self):
        engine = self._loaded()
        original = self.source.copy()
        self.source[:] = 0
        np.testing.assert_array_equal(engine.get_image(Role.SOURCE), original)

    def test_missing_image_degrades_to_none(self):
        # Given
        self.engine.set_source_image(self.source)
        self.engine.set_anchors(_grid_anchors())

        # When
        result = self.engine.set_phase(0.5)

        # Then
        self.assertIsNotNone(result.source_warped)
        self.assertIsNone(result.target_warped)
        self.assertIsNone(result.output)
        self.assertIsNone(self.engine.get_image(Role.OUTPUT))

    def test_target_warp_uses_source_canvas(self):
        self.engine.set_source_image(self.source)
        self.engine.set_target_image(_image(5, height=20, width=40))
        result = self.engine.set_phase(0.5)
        self.assertEqual(result.target_warped.shape, self.source.shape)
        self.assertEqual(result.output.shape, self.source.shape)

    def test_invalid_buffers_rejected(self):
        with self.assertRaises(ImageBufferError):
            self.engine.set_source_image(np.zeros((4, 4), dtype=np.uint8))
        with self.assertRaises(ImageBufferError):
            self.engine.set_source_image(np.zeros((4, 4, 3), dtype=np.float32))
        with self.assertRaises(ImageBufferError):
            self.engine.set_source_image(np.zeros((0, 4, 3), dtype=np.uint8))

    def test_collinear_anchors_keep_engine_usable(self):
        engine = self._loaded(anchors=[Anchor.at(i, i) for i in range(4)])
        result = engine.set_phase(0.5)
        self.assertEqual(len(engine.mesh), 0)
        np.testing.assert_array_equal(result.source_warped, self.source)

    def test_add_anchor_assigns_ids(self):
        engine = self._loaded(anchors=_three_anchors())
        added = engine.add_anchor(Anchor.at(20, 20))
        self.assertEqual(added.id, 3)
        self.assertEqual(len(engine.anchors), 4)

        with self.assertRaises(ValueError):
            engine.add_anchor(Anchor.at(5, 5, id=1))
        with self.assertRaises(KeyError):
            engine.move_anchor(99, source=(1, 1))

    def test_set_anchors_rejects_duplicate_ids(self):
        with self.assertRaises(ValueError):
            self.engine.set_anchors([Anchor.at(0, 0, id=1), Anchor.at(1, 1, id=1)])

    def test_find_anchor(self):
        engine = self._loaded()
        found = engine.find_anchor(18.5, 13.0, Side.TARGET, radius=1.0)
        self.assertEqual(found.id, engine.anchors[4].id)
        self.assertIsNone(engine.find_anchor(18.5, 13.0, Side.SOURCE, radius=1.0))

    def test_non_finite_phase_rejected(self):
        with self.assertRaises(ValueError):
            self.engine.set_phase(float("nan"))

    def test_subdiv_backend_resolves_by_proximity(self):
        # Given
        subdiv = MorphingEngine(MorphCfg(triangulator="subdiv"))
        subdiv.set_source_image(self.source)
        subdiv.set_target_image(self.target)
        subdiv.set_anchors(_three_anchors())

        # When
        result = subdiv.set_phase(0.5)

        # Then
        self.assertEqual(len(subdiv.mesh), 1)
        self.assertIsNone(subdiv.mesh.source[0].anchor_ids)
        vertices = {tuple(e[:2]) for e in result.current_edges}
        self.assertEqual(vertices, {(0.0, 0.0), (15.0, 0.0), (0.0, 15.0)})
        target = sorted(subdiv.mesh.target[0].vertices)
        self.assertEqual(target, [(0.0, 0.0), (0.0, 20.0), (20.0, 0.0)])

    def test_inverse_mode_produces_full_buffers(self):
        engine = MorphingEngine(MorphCfg(warp_mode="inverse"))
        engine.set_source_image(self.source)
        engine.set_target_image(self.target)
        engine.set_anchors(_grid_anchors())
        result = engine.set_phase(0.0)
        np.testing.assert_array_equal(result.source_warped, self.source)

    def test_unknown_warp_mode_rejected(self):
        with self.assertRaises(ValueError):
            MorphingEngine(MorphCfg(warp_mode="sideways"))


class TestEngineProject(unittest.TestCase):

    def test_set_project_loads_images_and_anchors(self):
        # Given
        images = {"a.png": _image(1), "b.png": _image(2)}
        project = Project(
            source_image_path="a.png",
            target_image_path="b.png",
            anchors=_three_anchors(),
        )
        engine = MorphingEngine(MorphCfg(initial_phase=0.25))

        # When
        result = engine.set_project(project, image_loader=lambda path: images[str(path)])

        # Then
        self.assertEqual(result.phase, 0.25)
        self.assertEqual([a.id for a in engine.anchors], [0, 1, 2])
        np.testing.assert_array_equal(engine.get_image(Role.TARGET), images["b.png"])
        snapshot = engine.project
        self.assertEqual(len(snapshot.anchors), 3)

    def test_failed_project_load_keeps_current_project(self):
        # Given
        images = {"a.png": _image(1), "b.png": _image(2), "c.png": _image(3)}

        def loader(path):
            if str(path) not in images:
                raise ImageIOError(f"Failed to load image from file {path}: no such file")
            return images[str(path)]

        engine = MorphingEngine(MorphCfg(initial_phase=0.5))
        before = engine.set_project(
            Project(source_image_path="a.png", target_image_path="b.png", anchors=_three_anchors()),
            image_loader=loader,
        )

        # When
        with self.assertRaises(ImageIOError):
            engine.set_project(
                Project(source_image_path="c.png", target_image_path="missing.png", anchors=[]),
                image_loader=loader,
            )
        after = engine.set_phase(0.5)

        # Then
        np.testing.assert_array_equal(engine.get_image(Role.SOURCE), images["a.png"])
        self.assertIs(after, before)
        snapshot = engine.project
        self.assertEqual(snapshot.source_image_path, "a.png")
        self.assertEqual(snapshot.target_image_path, "b.png")
        self.assertEqual(len(snapshot.anchors), 3)

    def test_failed_image_load_keeps_path(self):
        engine = MorphingEngine()
        engine.load_source_image("a.png", image_loader=lambda path: _image(1))

        def broken(path):
            raise ImageIOError(f"Failed to load image from file {path}")

        with self.assertRaises(ImageIOError):
            engine.load_source_image("b.png", image_loader=broken)
        self.assertEqual(str(engine.project.source_image_path), "a.png")

    def test_project_snapshot_copies_anchors(self):
        # Given
        engine = MorphingEngine()
        engine.set_anchors(_three_anchors())
        snapshot = engine.project

        # When
        snapshot.anchors[1].move_target(99, 99)

        # Then
        self.assertEqual(engine.get_anchor(snapshot.anchors[1].id).target, (20.0, 0.0))
        self.assertEqual(snapshot.anchors[0], engine.anchors[0])
        self.assertIsNot(snapshot.anchors[0], engine.anchors[0])

    def test_clearing_project(self):
        engine = MorphingEngine()
        engine.set_source_image(_image(1))
        engine.set_anchors(_three_anchors())

        self.assertIsNone(engine.set_project(None))

        self.assertEqual(engine.anchors, ())
        self.assertIsNone(engine.get_image(Role.SOURCE))
        self.assertIsNone(engine.result)


if __name__ == '__main__':
    unittest.main()
