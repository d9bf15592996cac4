# graph_store.py
"""Node, edge and canvas operations on the active canvas.

Every operation is synchronous. Operations that name an unknown node or canvas
quietly do nothing (or return ``""``) because ids routinely race with
deletions in an interactive session.
"""

import logging

import networkx as nx

from config import FORK_OFFSET, MERGE_Y_OFFSET
from models import (
    Canvas,
    Edge,
    MergeNode,
    NodeStatus,
    Position,
    PromptNode,
    ResponseNode,
    as_position,
    new_id,
    timestamp_ms,
)

logger = logging.getLogger(__name__)


class GraphStore:
    def __init__(self, workspace):
        self.workspace = workspace

    # Read access

    @property
    def nodes(self):
        return self.workspace.nodes

    @property
    def edges(self):
        return self.workspace.edges

    @property
    def selected_node_ids(self):
        return list(self.workspace.selected_node_ids)

    def get_node(self, node_id):
        for node in self.workspace.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id):
        return [edge for edge in self.workspace.edges if edge.target == node_id]

    def to_digraph(self):
        """Directed view of the working copy, edges in insertion order."""
        graph = nx.DiGraph()
        for node in self.workspace.nodes:
            graph.add_node(node.id, node=node)
        for edge in self.workspace.edges:
            graph.add_edge(edge.source, edge.target, id=edge.id)
        return graph

    # Canvases

    def create_canvas(self, name):
        self.workspace.flush()
        canvas = Canvas(id=new_id(), name=name)
        self.workspace.canvases.append(canvas)
        self.workspace.switch_canvas(canvas)
        self.workspace.save()
        logger.info("Created canvas '%s' (%s)", name, canvas.id)
        return canvas.id

    def load_canvas(self, canvas_id):
        canvas = self.workspace.find_canvas(canvas_id)
        if canvas is None:
            logger.debug("load_canvas: unknown canvas %s", canvas_id)
            return
        self.workspace.flush()
        self.workspace.switch_canvas(canvas)

    def unload_canvas(self):
        self.workspace.flush()
        self.workspace.switch_canvas(None)

    def delete_canvas(self, canvas_id):
        if self.workspace.find_canvas(canvas_id) is None:
            logger.debug("delete_canvas: unknown canvas %s", canvas_id)
            return
        self.workspace.canvases = [c for c in self.workspace.canvases if c.id != canvas_id]
        if self.workspace.current_canvas_id == canvas_id:
            self.workspace.switch_canvas(None)
        self.workspace.save()

    def rename_canvas(self, canvas_id, name):
        canvas = self.workspace.find_canvas(canvas_id)
        if canvas is None:
            logger.debug("rename_canvas: unknown canvas %s", canvas_id)
            return
        canvas.name = name
        canvas.updated_at = timestamp_ms()
        self.workspace.save()

    # Nodes

    def add_prompt_node(self, content, model_id, position, parent_id=None, persona_id=None, attachments=None):
        node = PromptNode(
            id=new_id(),
            content=content,
            model_id=model_id,
            position=as_position(position),
            persona_id=persona_id,
            attachments=list(attachments or []),
        )
        self.workspace.nodes.append(node)
        if parent_id:
            self.workspace.edges.append(Edge(source=parent_id, target=node.id))
        self.workspace.commit()
        return node.id

    def add_response_node(self, prompt_id, content, model_id, position, created_at=None):
        node = ResponseNode(
            id=new_id(),
            content=content,
            model_id=model_id,
            prompt_id=prompt_id,
            position=as_position(position),
        )
        if created_at is not None:
            node.created_at = created_at
        self.workspace.nodes.append(node)
        self.workspace.edges.append(Edge(source=prompt_id, target=node.id))
        self.workspace.commit()
        return node.id

    def update_node_content(self, node_id, content):
        node = self.get_node(node_id)
        if node is None:
            logger.debug("update_node_content: unknown node %s", node_id)
            return
        node.content = content
        self.workspace.commit()

    def update_node_status(self, node_id, status):
        node = self.get_node(node_id)
        if node is None:
            logger.debug("update_node_status: unknown node %s", node_id)
            return
        node.status = NodeStatus(status)
        self.workspace.commit()

    def hide_node(self, node_id, hidden):
        node = self.get_node(node_id)
        if node is None:
            logger.debug("hide_node: unknown node %s", node_id)
            return
        node.hidden = bool(hidden)
        self.workspace.commit()

    def delete_node(self, node_id):
        """Remove a node and its incident edges; descendants become roots."""
        if self.get_node(node_id) is None:
            logger.debug("delete_node: unknown node %s", node_id)
            return
        self.workspace.nodes = [n for n in self.workspace.nodes if n.id != node_id]
        self.workspace.edges = [
            e for e in self.workspace.edges if e.source != node_id and e.target != node_id
        ]
        self.workspace.selected_node_ids = [
            nid for nid in self.workspace.selected_node_ids if nid != node_id
        ]
        self.workspace.commit()

    def add_edge(self, source, target):
        if self.get_node(source) is None or self.get_node(target) is None:
            logger.debug("add_edge: unknown endpoint %s -> %s", source, target)
            return ""
        edge = Edge(source=source, target=target)
        self.workspace.edges.append(edge)
        self.workspace.commit()
        return edge.id

    # Branching

    def fork_from_node(self, node_id, new_prompt, model_id):
        source = self.get_node(node_id)
        if source is None:
            logger.debug("fork_from_node: unknown node %s", node_id)
            return ""
        position = source.position.offset(*FORK_OFFSET)
        return self.add_prompt_node(new_prompt, model_id, position, parent_id=node_id)

    def merge_nodes(self, node_ids, merged_content):
        sources = []
        for node_id in dict.fromkeys(node_ids):
            node = self.get_node(node_id)
            if node is not None:
                sources.append(node)
        if not sources:
            logger.debug("merge_nodes: nothing to merge in %s", list(node_ids))
            return ""

        avg_x = sum(node.position.x for node in sources) / len(sources)
        max_y = max(node.position.y for node in sources)
        merge = MergeNode(
            id=new_id(),
            content=merged_content,
            source_ids=[node.id for node in sources],
            position=Position(avg_x, max_y + MERGE_Y_OFFSET),
        )
        self.workspace.nodes.append(merge)
        for node in sources:
            self.workspace.edges.append(Edge(source=node.id, target=merge.id))
        self.workspace.selected_node_ids = []
        self.workspace.commit()
        return merge.id

    # Selection

    def toggle_node_selection(self, node_id):
        selected = self.workspace.selected_node_ids
        if node_id in selected:
            selected.remove(node_id)
        elif self.get_node(node_id) is not None:
            selected.append(node_id)

    def clear_selection(self):
        self.workspace.selected_node_ids = []

    # Rendering layer deltas

    def apply_node_changes(self, changes):
        """Fold position/selection/removal deltas from the canvas renderer.

        Position moves are kept in memory and only persisted with the next
        write-through or an explicit ``Workspace.flush``.
        """
        for change in changes:
            change_type = change.get("type")
            node_id = change.get("id")
            if change_type == "remove":
                self.delete_node(node_id)
            elif change_type == "position":
                node = self.get_node(node_id)
                if node is not None and change.get("position") is not None:
                    node.position = as_position(change["position"])
                    self.workspace.mark_dirty()
            elif change_type == "select":
                selected = self.workspace.selected_node_ids
                if change.get("selected"):
                    if node_id not in selected and self.get_node(node_id) is not None:
                        selected.append(node_id)
                elif node_id in selected:
                    selected.remove(node_id)
            else:
                logger.debug("Ignoring node change of type %r", change_type)

    def apply_edge_changes(self, changes):
        removed = {change.get("id") for change in changes if change.get("type") == "remove"}
        for change in changes:
            if change.get("type") != "remove":
                logger.debug("Ignoring edge change of type %r", change.get("type"))
        if not removed:
            return
        self.workspace.edges = [edge for edge in self.workspace.edges if edge.id not in removed]
        self.workspace.commit()
