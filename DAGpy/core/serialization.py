import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from .builder import Builder
from .config import Config
from .exceptions import GraphError
from .function import Function
from .network import Network
from .node import Node, NodeKind

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class NetworkSaver:
    """
    Saves and loads networks.

    A saved network is a ``.npz`` archive with three entries:

    - ``structure``: JSON record of every node in network order (kind,
      shape for a batch of one, operator tag and arguments, operand indices,
      recurrence index, flags and label)
    - ``x``: the flattened variable buffer
    - ``c``: the flattened constant buffer

    Loading rebuilds the nodes in the saved order, which yields the same
    topological order and buffer offsets, so a loaded network computes the
    same forward and backward results as the one that was saved.
    """

    @staticmethod
    def get_structure(network: Network) -> Dict[str, Any]:
        """Returns the JSON-serialisable structure record of a network."""
        index = {n.id: i for i, n in enumerate(network.nodes)}
        records: List[Dict[str, Any]] = []
        for node in network.nodes:
            shape = list(node.shape)
            if node.batched and shape:
                shape[0] = 1
            records.append(
                {
                    "kind": node.kind.value,
                    "shape": shape,
                    "op": node.op.name if node.op is not None else None,
                    "children": [index[c.id] for c in node.children],
                    "pre": index[node.pre.id] if node.pre is not None else -1,
                    "ext_flag": node.ext_flag,
                    "ext_label": node.ext_label,
                    "arguments": node.ctx.saved_arguments,
                    "name": node.name,
                }
            )
        return {
            "version": FORMAT_VERSION,
            "cost": index[network.roots[0].id],
            "roots": [index[r.id] for r in network.roots[1:]],
            "config": network.config.to_dict(),
            "auto_pool": (
                index[network._auto_pool.id] if network._auto_pool is not None else -1
            ),
            "nodes": records,
        }

    @staticmethod
    def save(network: Network, path: Union[str, Path]) -> None:
        """
        Save a network (structure, variables and constants).

        Args:
            network: The network to save
            path: Destination; numpy appends ``.npz`` if missing
        """
        path = Path(path)
        structure = NetworkSaver.get_structure(network)
        np.savez(
            path,
            structure=np.array(json.dumps(structure)),
            x=network.x,
            c=network.c,
        )
        logger.debug("Saved network with %d nodes to %s", network.n_nodes, path)

    @staticmethod
    def load(path: Union[str, Path], config: Optional[Config] = None) -> Network:
        """
        Load a network saved by ``save``.

        Args:
            path: Path to the archive
            config: Settings for the new network and its builder; the saved
                settings if None

        Returns:
            The loaded network, at batch size 1

        Raises:
            GraphError: If the archive is malformed or names an unknown
                operator
        """
        from .. import ops  # noqa: F401  (registers every operator tag)

        path = Path(path)
        if not path.exists() and path.suffix != ".npz":
            path = path.with_suffix(".npz")

        with np.load(path, allow_pickle=False) as archive:
            structure = json.loads(str(archive["structure"]))
            x = np.array(archive["x"])
            c = np.array(archive["c"])

        if structure.get("version") != FORMAT_VERSION:
            raise GraphError(f"Unsupported network format: {structure.get('version')}")

        if config is None and "config" in structure:
            config = Config(**structure["config"])
        builder = Builder(config)
        nodes: List[Node] = []
        x_offset, c_offset = 0, 0
        for record in structure["nodes"]:
            kind = NodeKind(record["kind"])
            shape = tuple(record["shape"])
            if kind is NodeKind.FEED:
                node = builder.feed(*shape)
            elif kind is NodeKind.VAR:
                size = int(np.prod(shape, dtype=np.int64))
                node = builder.var(shape, x[x_offset : x_offset + size])
                x_offset += size
            elif kind is NodeKind.CONST:
                size = int(np.prod(shape, dtype=np.int64))
                node = builder.const(shape, c[c_offset : c_offset + size])
                c_offset += size
            else:
                op = Function.lookup(record["op"])
                children = [nodes[i] for i in record["children"]]
                node = builder.apply(op, children, **record["arguments"])
            node.ext_flag = record["ext_flag"]
            node.ext_label = record["ext_label"]
            node.name = record["name"]
            nodes.append(node)

        if x_offset != x.size or c_offset != c.size:
            raise GraphError("Saved buffers do not match the saved structure")
        for node, record in zip(nodes, structure["nodes"]):
            if record["pre"] >= 0:
                node.pre = nodes[record["pre"]]

        network = Network(
            nodes[structure["cost"]],
            *(nodes[i] for i in structure["roots"]),
            config=builder.config,
        )
        if structure["auto_pool"] >= 0:
            network._auto_pool = nodes[structure["auto_pool"]]
        logger.debug("Loaded network with %d nodes from %s", network.n_nodes, path)
        return network
