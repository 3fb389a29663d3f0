"""
Job Document Builder

A job document is a mostly fixed ComfyUI workflow graph in API format with
a single field that changes from cycle to cycle: the name of the uploaded
input image. The template is deep-copied and that one field is set by key
path, so nothing else in the graph can be touched by the substitution.
"""
import copy
import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

logger = logging.getLogger(__name__)

# Correlation token shared by every job submitted from this process
CLIENT_ID = uuid.uuid4().hex

INPUT_PLACEHOLDER = "input.png"

# img2img: LoadImage(10) -> VAEEncode(11) -> KSampler(3) -> VAEDecode(8) -> SaveImage(9)
DEFAULT_WORKFLOW: Dict[str, Any] = {
    "3": {
        "class_type": "KSampler",
        "inputs": {
            "seed": 156680208700286,
            "steps": 20,
            "cfg": 7.0,
            "sampler_name": "euler",
            "scheduler": "normal",
            "denoise": 0.6,
            "model": ["4", 0],
            "positive": ["6", 0],
            "negative": ["7", 0],
            "latent_image": ["11", 0],
        },
    },
    "4": {
        "class_type": "CheckpointLoaderSimple",
        "inputs": {"ckpt_name": "v1-5-pruned-emaonly.safetensors"},
    },
    "6": {
        "class_type": "CLIPTextEncode",
        "inputs": {"text": "oil painting, impressionist style, vivid colors", "clip": ["4", 1]},
    },
    "7": {
        "class_type": "CLIPTextEncode",
        "inputs": {"text": "blurry, low quality, watermark", "clip": ["4", 1]},
    },
    "8": {
        "class_type": "VAEDecode",
        "inputs": {"samples": ["3", 0], "vae": ["4", 2]},
    },
    "9": {
        "class_type": "SaveImage",
        "inputs": {"filename_prefix": "frame_relay", "images": ["8", 0]},
    },
    "10": {
        "class_type": "LoadImage",
        "inputs": {"image": INPUT_PLACEHOLDER},
    },
    "11": {
        "class_type": "VAEEncode",
        "inputs": {"pixels": ["10", 0], "vae": ["4", 2]},
    },
}


@dataclass(frozen=True)
class JobDocument:
    """One submission: the workflow graph plus the client correlation token."""
    graph: Dict[str, Any]
    client_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"prompt": self.graph, "client_id": self.client_id}


class JobDocumentBuilder:
    """Builds job documents from a template graph."""

    def __init__(
        self,
        template: Optional[Dict[str, Any]] = None,
        input_path: Sequence[str] = ("10", "inputs", "image"),
        client_id: str = CLIENT_ID,
    ):
        """Initialize builder.

        Args:
            template: Workflow graph in API format (DEFAULT_WORKFLOW if None)
            input_path: Key path of the field that receives the uploaded name
            client_id: Correlation token attached to every document
        """
        self.template = copy.deepcopy(template if template is not None else DEFAULT_WORKFLOW)
        self.input_path = tuple(input_path)
        self.client_id = client_id
        # Fail at construction rather than on the first cycle
        self._resolve_parent(self.template)

    def build(self, input_name: str) -> JobDocument:
        """Return a new document with ``input_name`` set as the input image."""
        graph = copy.deepcopy(self.template)
        parent = self._resolve_parent(graph)
        parent[self.input_path[-1]] = input_name
        return JobDocument(graph=graph, client_id=self.client_id)

    def _resolve_parent(self, graph: Dict[str, Any]) -> Dict[str, Any]:
        node = graph
        for key in self.input_path[:-1]:
            if not isinstance(node, dict) or key not in node:
                raise ValueError(f"Workflow has no field at {'/'.join(self.input_path)}")
            node = node[key]
        if not isinstance(node, dict) or self.input_path[-1] not in node:
            raise ValueError(f"Workflow has no field at {'/'.join(self.input_path)}")
        return node


def load_workflow(path: str, input_node: str, output_node: str) -> Dict[str, Any]:
    """Load an API-format workflow and check it has the nodes the relay uses.

    Args:
        path: JSON file exported with "Save (API Format)"
        input_node: Id of the LoadImage node
        output_node: Id of the SaveImage node polled for results

    Returns:
        The parsed workflow graph

    Raises:
        ValueError: If either node is missing
    """
    with open(Path(path), "r", encoding="utf-8") as f:
        workflow = json.load(f)

    for node_id in (input_node, output_node):
        if node_id not in workflow:
            raise ValueError(f"Workflow {path} has no node '{node_id}'")

    logger.info(f"Loaded workflow {path} ({len(workflow)} nodes)")
    return workflow
