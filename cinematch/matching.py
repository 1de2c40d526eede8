"""
Match engines.

Both are pure functions over plain data; no database or provider access.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Set, Tuple

PREMATCH_LIMIT = 10

# (user_id, movie_id, liked)
SwipeRow = Tuple[str, int, bool]


def compute_matches(swipes: Iterable[SwipeRow], participant_ids: Iterable[str]) -> List[int]:
    """
    Movies every participant liked.

    A participant who never swiped a movie has not liked it, so that movie
    cannot match. No participants means no matches.

    Returns:
        Matched movie ids, ascending (independent of swipe order)
    """
    participants = set(participant_ids)
    if not participants:
        return []

    likers: Dict[int, Set[str]] = defaultdict(set)
    for user_id, movie_id, liked in swipes:
        if liked:
            likers[movie_id].add(user_id)

    return sorted(movie_id for movie_id, users in likers.items() if participants <= users)


def compute_prematches(saved_lists: Mapping[str, Iterable[int]], limit: int = PREMATCH_LIMIT) -> List[Tuple[int, List[str]]]:
    """
    Movies already saved by more than one member.

    Args:
        saved_lists: user id -> that user's saved movie ids
        limit: maximum number of results

    Returns:
        (movie_id, [user ids who saved it]) pairs, most savers first; ties
        broken by movie id
    """
    if len(saved_lists) < 2:
        return []

    savers: Dict[int, List[str]] = defaultdict(list)
    for user_id, movie_ids in saved_lists.items():
        for movie_id in set(movie_ids):
            savers[movie_id].append(user_id)

    shared = [(movie_id, sorted(users)) for movie_id, users in savers.items() if len(users) > 1]
    shared.sort(key=lambda item: (-len(item[1]), item[0]))
    return shared[:limit]
