from typing import AbstractSet, Iterable, List

from jobmap.models import Annotation


def ids_in_job(annotations: Iterable[Annotation], candidate_ids: AbstractSet[int]) -> List[int]:
    """
    Keep only the candidate ids that belong to `annotations`, in the
    annotations' own order (the order batch saves run in).
    Drafts without an id are skipped.
    """
    out: List[int] = []
    for a in annotations:
        if a.id is None:
            continue
        if a.id in candidate_ids:
            out.append(a.id)
    return out
