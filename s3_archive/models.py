"""
s3_archive/models.py — value types passed between the record store and the pipeline.

Records are loaded, copied with a changed field (dataclasses.replace) and
saved back; nothing holds a live handle into the database.
"""
from dataclasses import dataclass
from typing import Optional

# Media use term marking the one file per node that gets archived
ORIGINAL_FILE_USE = "http://pcdm.org/use#OriginalFile"

# Node models whose members are walked when a collection is archived
CONTAINER_MODELS = frozenset({
    "http://purl.org/dc/dcmitype/Collection",
    "http://vocab.getty.edu/aat/300242735",     # Compound Object
    "https://schema.org/Newspaper",
    "https://schema.org/Book",
    "https://schema.org/PublicationIssue",
})

# Scope sentinel: every node in the repository
ALL = "all"


@dataclass(frozen=True)
class Node:
    id: int
    title: str
    model: Optional[str] = None
    member_of: Optional[int] = None
    archive_link: Optional[str] = None
    archive_filename: Optional[str] = None


@dataclass(frozen=True)
class Candidate:
    """One unit of migration work: a node and its original-file media."""
    node_id: int
    media_id: int
    file_id: int
    uri: str

    def describe(self) -> str:
        return f"node={self.node_id} media={self.media_id} file={self.file_id} uri={self.uri}"
