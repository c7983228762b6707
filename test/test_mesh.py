import unittest

import numpy as np

from trimorph.services.anchors import Anchor
from trimorph.services.errors import GeometryFailure
from trimorph.services.methods.mesh import (
    DelaunayTriangulator,
    Mesh,
    SubdivTriangulator,
    Triangle,
    anchors_of,
    build_source_mesh,
    build_target_mesh,
    make_triangulator,
    triangle_edges,
)


def _three_anchors():
    return [
        Anchor.between((0, 0), (0, 0), id=0),
        Anchor.between((10, 0), (20, 0), id=1),
        Anchor.between((0, 10), (0, 20), id=2),
    ]


def _square_anchors():
    return [
        Anchor.between((0, 0), (1, 1), id=0),
        Anchor.between((40, 0), (42, 2), id=1),
        Anchor.between((40, 40), (38, 41), id=2),
        Anchor.between((0, 40), (2, 39), id=3),
        Anchor.between((20, 18), (22, 20), id=4),
    ]


class TestBuildSourceMesh(unittest.TestCase):

    def test_fewer_than_three_anchors_yield_empty_mesh(self):
        triangulator = DelaunayTriangulator()
        for count in range(3):
            anchors = _three_anchors()[:count]
            self.assertEqual(build_source_mesh(anchors, triangulator), [])

    def test_three_anchors_yield_one_triangle(self):
        # Given
        anchors = _three_anchors()

        # When
        triangles = build_source_mesh(anchors, DelaunayTriangulator())

        # Then
        self.assertEqual(len(triangles), 1)
        self.assertEqual(triangles[0].index, 0)
        self.assertEqual(sorted(triangles[0].anchor_ids), [0, 1, 2])
        self.assertEqual(
            sorted(triangles[0].vertices),
            [(0.0, 0.0), (0.0, 10.0), (10.0, 0.0)],
        )

    def test_tags_are_anchor_ids_not_list_positions(self):
        # Given
        anchors = [
            Anchor.at(0, 0, id=7),
            Anchor.at(10, 0, id=3),
            Anchor.at(0, 10, id=11),
        ]

        # When
        triangles = build_source_mesh(anchors, DelaunayTriangulator())

        # Then
        self.assertEqual(sorted(triangles[0].anchor_ids), [3, 7, 11])

    def test_collinear_anchors_yield_empty_mesh(self):
        # Given
        anchors = [Anchor.at(i * 5, i * 5, id=i) for i in range(4)]

        # When
        with self.assertLogs("trimorph.services.methods.mesh", level="WARNING"):
            triangles = build_source_mesh(anchors, DelaunayTriangulator())

        # Then
        self.assertEqual(triangles, [])

    def test_duplicate_anchors_do_not_raise(self):
        anchors = [Anchor.at(5, 5, id=i) for i in range(3)]
        with self.assertLogs("trimorph.services.methods.mesh", level="WARNING"):
            self.assertEqual(build_source_mesh(anchors, DelaunayTriangulator()), [])

    def test_subdiv_backend_yields_one_untagged_triangle(self):
        # Given
        anchors = _three_anchors()

        # When
        triangles = build_source_mesh(anchors, SubdivTriangulator())

        # Then
        self.assertEqual(len(triangles), 1)
        self.assertIsNone(triangles[0].anchor_ids)
        found = anchors_of(triangles[0], anchors, 0.0)
        self.assertEqual(sorted(a.id for a in found), [0, 1, 2])

    def test_backends_agree_on_triangle_count(self):
        anchors = _square_anchors()
        delaunay = build_source_mesh(anchors, DelaunayTriangulator())
        subdiv = build_source_mesh(anchors, SubdivTriangulator())
        self.assertEqual(len(delaunay), 4)
        self.assertEqual(len(subdiv), 4)


class TestTriangulators(unittest.TestCase):

    def test_make_triangulator(self):
        self.assertIsInstance(make_triangulator("delaunay"), DelaunayTriangulator)
        self.assertIsInstance(make_triangulator("Subdiv"), SubdivTriangulator)
        with self.assertRaises(ValueError):
            make_triangulator("voronoi")

    def test_direct_call_with_too_few_points_raises(self):
        with self.assertRaises(GeometryFailure):
            DelaunayTriangulator().triangulate(np.array([[0.0, 0.0], [1.0, 1.0]]))


class TestTargetMesh(unittest.TestCase):

    def test_target_mesh_parallels_source_mesh(self):
        # Given
        anchors = _square_anchors()
        source = build_source_mesh(anchors, DelaunayTriangulator())

        # When
        target = build_target_mesh(source, anchors)

        # Then
        self.assertEqual(len(source), len(target))
        by_id = {a.id: a for a in anchors}
        for src, tgt in zip(source, target):
            self.assertEqual(src.index, tgt.index)
            self.assertEqual(src.anchor_ids, tgt.anchor_ids)
            expected = tuple(by_id[i].target for i in src.anchor_ids)
            self.assertEqual(tgt.vertices, expected)

    def test_unresolvable_triangle_becomes_degenerate(self):
        # Given
        anchors = _three_anchors()
        stray = Triangle(index=0, vertices=((100.0, 100.0), (110.0, 100.0), (100.0, 110.0)))

        # When
        with self.assertLogs("trimorph.services.methods.mesh", level="WARNING"):
            target = build_target_mesh([stray], anchors)

        # Then
        self.assertEqual(len(target), 1)
        self.assertTrue(target[0].is_degenerate)

    def test_mesh_rejects_unequal_lists(self):
        tri = Triangle(index=0, vertices=((0, 0), (1, 0), (0, 1)))
        with self.assertRaises(ValueError):
            Mesh(source=[tri], target=[])
        self.assertEqual(len(Mesh.empty()), 0)


class TestAnchorResolution(unittest.TestCase):

    def test_proximity_matching_uses_epsilon(self):
        # Given
        anchors = _three_anchors()
        near = Triangle(index=0, vertices=((0.005, 0.0), (10.0, 0.009), (0.0, 10.0)))
        far = Triangle(index=1, vertices=((0.02, 0.0), (10.0, 0.0), (0.0, 10.0)))

        # When
        found_near = anchors_of(near, anchors, 0.0)
        with self.assertLogs("trimorph.services.methods.mesh", level="WARNING"):
            found_far = anchors_of(far, anchors, 0.0)

        # Then
        self.assertEqual([a.id for a in found_near], [0, 1, 2])
        self.assertEqual([a.id for a in found_far], [1, 2])

    def test_matching_phase_selects_positions(self):
        anchors = _three_anchors()
        tri = Triangle(index=0, vertices=((0.0, 0.0), (20.0, 0.0), (0.0, 20.0)))
        self.assertEqual([a.id for a in anchors_of(tri, anchors, 1.0)], [0, 1, 2])

    def test_tagged_triangle_resolves_by_id(self):
        anchors = _three_anchors()
        # vertex coordinates are irrelevant once tagged
        tri = Triangle(index=0, vertices=((99, 99), (98, 98), (97, 96)), anchor_ids=(2, 0, 1))
        self.assertEqual([a.id for a in anchors_of(tri, anchors, 0.0)], [2, 0, 1])


class TestTriangleEdges(unittest.TestCase):

    def test_edges_at_phase(self):
        # Given
        anchors = _three_anchors()
        source = build_source_mesh(anchors, DelaunayTriangulator())

        def resolve(tri):
            return anchors_of(tri, anchors, 0.0)

        # When
        edges = triangle_edges(source, resolve, 0.5)

        # Then
        self.assertEqual(edges.shape, (3, 4))
        endpoints = {tuple(e[:2]) for e in edges} | {tuple(e[2:]) for e in edges}
        self.assertEqual(endpoints, {(0.0, 0.0), (15.0, 0.0), (0.0, 15.0)})

    def test_no_triangles_no_edges(self):
        edges = triangle_edges([], lambda tri: [], 0.3)
        self.assertEqual(edges.shape, (0, 4))


if __name__ == '__main__':
    unittest.main()
