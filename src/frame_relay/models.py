"""
Pydantic models for the service's artifact descriptors
"""
from pydantic import BaseModel, Field


class RemoteArtifactRef(BaseModel):
    """The service's own naming of an uploaded or produced artifact."""
    name: str
    subfolder: str = ""
    kind: str = "output"


class OutputDescriptor(BaseModel):
    """One entry of a finished job's ``outputs[<node>].images`` list."""
    filename: str = Field(..., description="Name of the produced image")
    subfolder: str = Field("", description="Subfolder under the service's output root")
    type: str = Field("output", description="Artifact kind (output, temp, input)")

    @classmethod
    def from_entry(cls, entry: dict) -> "OutputDescriptor":
        # The service may send null or omit subfolder/type
        subfolder = entry.get("subfolder")
        kind = entry.get("type")
        return cls(
            filename=entry["filename"],
            subfolder=subfolder if isinstance(subfolder, str) else "",
            type=kind if isinstance(kind, str) and kind else "output",
        )

    def to_ref(self) -> RemoteArtifactRef:
        return RemoteArtifactRef(name=self.filename, subfolder=self.subfolder, kind=self.type)
