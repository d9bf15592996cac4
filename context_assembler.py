# context_assembler.py
"""Rebuild the conversation history that leads up to a node."""

import logging

from models import MergeNode, PromptNode, ResponseNode

logger = logging.getLogger(__name__)


def build_turn_message(prompt):
    """Encode one prompt node as a user message.

    Plain text unless the prompt carries attachments, in which case the
    content becomes a list: the text part followed by one part per image.
    File attachments are not inlined.
    """
    if not prompt.attachments:
        return {"role": "user", "content": prompt.content}

    parts = [{"type": "text", "text": prompt.content}]
    for attachment in prompt.attachments:
        if attachment.is_image:
            parts.append({"type": "image", "image": attachment.payload})
        else:
            logger.debug("Skipping file attachment '%s' on %s", attachment.name, prompt.id)
    return {"role": "user", "content": parts}


class ContextAssembler:
    def __init__(self, store, workspace):
        self.store = store
        self.workspace = workspace

    def ancestor_chain(self, node_id, graph=None):
        """Node ids from the root down to ``node_id``.

        Follows the first incoming edge of each node. A node seen twice ends
        the walk, so cycles yield one pass.
        """
        graph = graph if graph is not None else self.store.to_digraph()
        chain = []
        visited = set()
        current = node_id
        while current is not None and current not in visited:
            visited.add(current)
            chain.append(current)
            parents = list(graph.predecessors(current)) if current in graph else []
            current = parents[0] if parents else None
        chain.reverse()
        return chain

    def build_context_for_node(self, node_id, include_target=True):
        graph = self.store.to_digraph()
        chain = self.ancestor_chain(node_id, graph)

        messages = []
        if chain:
            # The persona hangs off the root even when the root is the target
            root = self.store.get_node(chain[0])
            if isinstance(root, PromptNode) and root.persona_id:
                persona = self.workspace.find_persona(root.persona_id)
                if persona is not None:
                    messages.append({"role": "system", "content": persona.content})

        if not include_target:
            chain = chain[:-1]
        for nid in chain:
            node = graph.nodes[nid].get("node") if nid in graph else None
            if node is None or node.hidden:
                continue
            if isinstance(node, PromptNode):
                messages.append(build_turn_message(node))
            elif isinstance(node, (ResponseNode, MergeNode)):
                messages.append({"role": "assistant", "content": node.content})
            else:
                raise TypeError(f"Unhandled node type: {type(node).__name__}")
        return messages
