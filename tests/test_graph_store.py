import sys
from pathlib import Path
import unittest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from graph_store import GraphStore
from models import MergeNode, NodeStatus, Position, PromptNode, ResponseNode
from persistence import MemoryStorage
from workspace import Workspace


class GraphStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.workspace = Workspace.from_storage(self.storage)
        self.store = GraphStore(self.workspace)
        self.canvas_id = self.store.create_canvas("Scratch")

    def saved_canvas(self, canvas_id=None):
        state = self.storage.load_all()
        for canvas in state["canvases"]:
            if canvas["id"] == (canvas_id or self.canvas_id):
                return canvas
        return None


class CanvasTests(GraphStoreTestCase):
    def test_create_canvas_activates_it(self):
        self.assertEqual(self.workspace.current_canvas_id, self.canvas_id)
        self.assertEqual(self.store.nodes, [])
        self.assertIsNotNone(self.saved_canvas())

    def test_load_canvas_swaps_working_copy(self):
        self.store.add_prompt_node("first", "gpt-4o", (0, 0))
        other_id = self.store.create_canvas("Other")
        self.assertEqual(self.store.nodes, [])

        self.store.load_canvas(self.canvas_id)
        self.assertEqual([node.content for node in self.store.nodes], ["first"])
        self.assertEqual(self.workspace.current_canvas_id, self.canvas_id)
        self.assertNotEqual(other_id, self.canvas_id)

    def test_load_unknown_canvas_is_noop(self):
        generation = self.workspace.generation
        self.store.load_canvas("missing")
        self.assertEqual(self.workspace.current_canvas_id, self.canvas_id)
        self.assertEqual(self.workspace.generation, generation)

    def test_delete_active_canvas_clears_working_copy(self):
        self.store.add_prompt_node("first", "gpt-4o", (0, 0))
        self.store.delete_canvas(self.canvas_id)
        self.assertIsNone(self.workspace.current_canvas_id)
        self.assertEqual(self.store.nodes, [])
        self.assertIsNone(self.saved_canvas())

    def test_delete_other_canvas_keeps_active(self):
        other_id = self.store.create_canvas("Other")
        self.store.delete_canvas(self.canvas_id)
        self.assertEqual(self.workspace.current_canvas_id, other_id)

    def test_rename_canvas_persists(self):
        self.store.rename_canvas(self.canvas_id, "Renamed")
        self.assertEqual(self.saved_canvas()["name"], "Renamed")

    def test_unload_canvas(self):
        self.store.unload_canvas()
        self.assertIsNone(self.workspace.current_canvas)
        self.assertEqual(self.store.edges, [])


class NodeTests(GraphStoreTestCase):
    def test_add_prompt_with_parent_creates_edge(self):
        root = self.store.add_prompt_node("root", "gpt-4o", (0, 0))
        child = self.store.add_prompt_node("child", "gpt-4o", (0, 300), parent_id=root)

        self.assertEqual(len(self.store.edges), 1)
        edge = self.store.edges[0]
        self.assertEqual((edge.source, edge.target), (root, child))
        self.assertEqual(edge.id, f"e-{root}-{child}")
        self.assertEqual(len(self.saved_canvas()["nodes"]), 2)

    def test_add_response_node_links_prompt(self):
        prompt = self.store.add_prompt_node("q", "gpt-4o", (0, 0))
        response = self.store.add_response_node(prompt, "a", "gpt-4o", Position(0, 250))

        node = self.store.get_node(response)
        self.assertIsInstance(node, ResponseNode)
        self.assertEqual(node.prompt_id, prompt)
        self.assertEqual(node.status, NodeStatus.COMPLETE)
        self.assertEqual(self.store.incoming_edges(response)[0].source, prompt)

    def test_update_status_is_written_through(self):
        prompt = self.store.add_prompt_node("q", "gpt-4o", (0, 0))
        self.store.update_node_status(prompt, NodeStatus.LOADING)
        saved = self.saved_canvas()["nodes"][0]
        self.assertEqual(saved["status"], "loading")

    def test_updates_on_unknown_ids_are_noops(self):
        saves = self.storage.save_count
        self.store.update_node_content("missing", "x")
        self.store.update_node_status("missing", NodeStatus.ERROR)
        self.store.hide_node("missing", True)
        self.store.delete_node("missing")
        self.assertEqual(self.store.fork_from_node("missing", "x", "gpt-4o"), "")
        self.assertEqual(self.store.add_edge("missing", "other"), "")
        self.assertEqual(self.storage.save_count, saves)

    def test_hide_node(self):
        prompt = self.store.add_prompt_node("q", "gpt-4o", (0, 0))
        self.store.hide_node(prompt, True)
        self.assertTrue(self.store.get_node(prompt).hidden)

    def test_delete_node_cascades_edges_and_selection(self):
        a = self.store.add_prompt_node("a", "gpt-4o", (0, 0))
        b = self.store.add_response_node(a, "b", "gpt-4o", (0, 250))
        c = self.store.add_prompt_node("c", "gpt-4o", (0, 500), parent_id=b)
        self.store.toggle_node_selection(b)

        self.store.delete_node(b)

        self.assertIsNone(self.store.get_node(b))
        self.assertEqual(self.store.edges, [])
        self.assertEqual(self.store.selected_node_ids, [])
        # The descendant survives as a new root
        self.assertIsNotNone(self.store.get_node(c))
        self.assertEqual(self.store.incoming_edges(c), [])


class BranchingTests(GraphStoreTestCase):
    def test_fork_offsets_from_source(self):
        source = self.store.add_prompt_node("q", "gpt-4o", (100, 50))
        fork = self.store.fork_from_node(source, "what if", "claude-3-opus-20240229")

        node = self.store.get_node(fork)
        self.assertIsInstance(node, PromptNode)
        self.assertEqual((node.position.x, node.position.y), (500, 150))
        self.assertEqual(node.model_id, "claude-3-opus-20240229")
        self.assertEqual(self.store.incoming_edges(fork)[0].source, source)

    def test_merge_creates_fan_in(self):
        ids = [
            self.store.add_prompt_node("a", "gpt-4o", (0, 0)),
            self.store.add_prompt_node("b", "gpt-4o", (300, 100)),
            self.store.add_prompt_node("c", "gpt-4o", (600, 50)),
        ]
        self.store.toggle_node_selection(ids[0])

        merge_id = self.store.merge_nodes(ids, "combined")

        merge = self.store.get_node(merge_id)
        self.assertIsInstance(merge, MergeNode)
        self.assertEqual(merge.source_ids, ids)
        self.assertEqual((merge.position.x, merge.position.y), (300, 300))
        incoming = self.store.incoming_edges(merge_id)
        self.assertEqual(len(incoming), 3)
        self.assertEqual([edge.source for edge in incoming], ids)
        self.assertEqual(self.store.selected_node_ids, [])

    def test_merge_skips_unknown_and_duplicate_ids(self):
        a = self.store.add_prompt_node("a", "gpt-4o", (0, 0))
        merge_id = self.store.merge_nodes([a, "missing", a], "x")
        self.assertEqual(self.store.get_node(merge_id).source_ids, [a])
        self.assertEqual(len(self.store.incoming_edges(merge_id)), 1)

    def test_merge_of_nothing_is_noop(self):
        self.assertEqual(self.store.merge_nodes([], "x"), "")
        self.assertEqual(self.store.merge_nodes(["missing"], "x"), "")
        self.assertEqual(self.store.nodes, [])

    def test_to_digraph(self):
        a = self.store.add_prompt_node("a", "gpt-4o", (0, 0))
        b = self.store.add_response_node(a, "b", "gpt-4o", (0, 250))
        graph = self.store.to_digraph()
        self.assertEqual(list(graph.predecessors(b)), [a])
        self.assertIs(graph.nodes[a]["node"], self.store.get_node(a))


class RenderingDeltaTests(GraphStoreTestCase):
    def test_position_delta_marks_dirty_until_flush(self):
        prompt = self.store.add_prompt_node("q", "gpt-4o", (0, 0))
        saves = self.storage.save_count

        self.store.apply_node_changes([{"type": "position", "id": prompt, "position": {"x": 40, "y": 60}}])

        self.assertTrue(self.workspace.dirty)
        self.assertEqual(self.storage.save_count, saves)
        self.assertEqual(self.saved_canvas()["nodes"][0]["position"], {"x": 0, "y": 0})

        self.workspace.flush()
        self.assertFalse(self.workspace.dirty)
        self.assertEqual(self.saved_canvas()["nodes"][0]["position"], {"x": 40, "y": 60})

    def test_select_and_remove_deltas(self):
        a = self.store.add_prompt_node("a", "gpt-4o", (0, 0))
        b = self.store.add_prompt_node("b", "gpt-4o", (10, 0))

        self.store.apply_node_changes([
            {"type": "select", "id": a, "selected": True},
            {"type": "select", "id": b, "selected": True},
            {"type": "select", "id": a, "selected": False},
            {"type": "dimensions", "id": a},
        ])
        self.assertEqual(self.store.selected_node_ids, [b])

        self.store.apply_node_changes([{"type": "remove", "id": b}])
        self.assertIsNone(self.store.get_node(b))
        self.assertEqual(self.store.selected_node_ids, [])

    def test_edge_remove_delta(self):
        a = self.store.add_prompt_node("a", "gpt-4o", (0, 0))
        b = self.store.add_prompt_node("b", "gpt-4o", (0, 300), parent_id=a)
        edge_id = self.store.edges[0].id

        self.store.apply_edge_changes([{"type": "select", "id": edge_id}])
        self.assertEqual(len(self.store.edges), 1)

        self.store.apply_edge_changes([{"type": "remove", "id": edge_id}])
        self.assertEqual(self.store.incoming_edges(b), [])

    def test_toggle_selection_ignores_unknown(self):
        self.store.toggle_node_selection("missing")
        self.assertEqual(self.store.selected_node_ids, [])


if __name__ == "__main__":
    unittest.main()
