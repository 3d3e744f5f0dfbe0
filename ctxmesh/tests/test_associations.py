"""
Unit Tests: Association Graph

Tests:
    - Symmetric link / unlink
    - Node removal drops incident edges
    - Self-links refused
"""

from ctxmesh.memory.ltm.associations import AssociationGraph


class TestAssociationGraph:
    """Tests for the undirected association graph."""

    def test_link_is_symmetric(self):
        graph = AssociationGraph()

        assert graph.link("a", "b", 0.7)

        assert graph.weight("a", "b") == 0.7
        assert graph.weight("b", "a") == 0.7
        assert graph.edge_count == 1
        assert graph.is_symmetric()

    def test_relink_updates_both_directions(self):
        graph = AssociationGraph()
        graph.link("a", "b", 0.4)
        graph.link("b", "a", 0.9)

        assert graph.weight("a", "b") == 0.9
        assert graph.edge_count == 1

    def test_self_link_refused(self):
        graph = AssociationGraph()

        assert not graph.link("a", "a")
        assert graph.edge_count == 0

    def test_unlink(self):
        graph = AssociationGraph()
        graph.link("a", "b")

        assert graph.unlink("b", "a")
        assert not graph.unlink("a", "b")
        assert graph.neighbors("a") == {}
        assert graph.neighbors("b") == {}

    def test_remove_node_drops_incident_edges(self):
        graph = AssociationGraph()
        graph.link("a", "b", 0.5)
        graph.link("a", "c", 0.6)
        graph.link("b", "c", 0.7)

        removed = graph.remove_node("a")

        assert removed == 2
        assert not graph.has_node("a")
        assert graph.neighbors("b") == {"c": 0.7}
        assert graph.neighbors("c") == {"b": 0.7}
        assert graph.is_symmetric()

    def test_unlink_all_keeps_node(self):
        graph = AssociationGraph()
        graph.link("a", "b")
        graph.link("a", "c")

        assert graph.unlink_all("a") == 2
        assert graph.has_node("a")
        assert graph.degree("a") == 0
        assert graph.degree("b") == 0

    def test_edges_listed_once(self):
        graph = AssociationGraph()
        graph.link("b", "a", 0.3)
        graph.link("c", "a", 0.2)

        assert sorted(graph.edges()) == [("a", "b", 0.3), ("a", "c", 0.2)]

    def test_clear(self):
        graph = AssociationGraph()
        graph.link("a", "b")
        graph.clear()

        assert graph.node_count == 0
        assert graph.edge_count == 0
