"""
Community rosters and the derived ally graph.

Membership is a set: adding a present member or removing an absent one is a
no-op. Ally edges are fanned out over every co-member on join and pruned on
leave only when the two users no longer share any other community.
"""
from sqlalchemy.orm import Session
from sqlalchemy import or_, and_
from typing import List, Set
import logging
import uuid

from hoodpay.core.errors import MembershipError
from hoodpay.models.ally import Ally
from hoodpay.models.community import Community, CommunityMember

logger = logging.getLogger(__name__)


class MembershipSynchronizer:
    def __init__(self, db: Session):
        self.db = db

    # --- roster ---------------------------------------------------------

    def member_ids(self, community: Community) -> Set[uuid.UUID]:
        """Current members, creator included."""
        rows = self.db.query(CommunityMember.user_id).filter(
            CommunityMember.community_id == community.id
        ).all()
        members = {row[0] for row in rows}
        members.add(community.creator_id)
        return members

    def is_member(self, user_id: uuid.UUID, community: Community) -> bool:
        if user_id == community.creator_id:
            return True
        return self.db.query(CommunityMember.id).filter(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == user_id
        ).first() is not None

    def add_member(self, user_id: uuid.UUID, community: Community) -> bool:
        """Add user to the roster. Returns False when already a member."""
        if self.is_member(user_id, community):
            return False
        self.db.add(CommunityMember(community_id=community.id, user_id=user_id))
        self.db.flush()
        logger.info(f"[MEMBERSHIP] Added user {user_id} to community {community.id}")
        return True

    def remove_member(self, user_id: uuid.UUID, community: Community) -> bool:
        """Remove user from the roster. Returns False when not a member."""
        if user_id == community.creator_id:
            raise MembershipError("The creator cannot be removed from the community")
        removed = self.db.query(CommunityMember).filter(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == user_id
        ).delete(synchronize_session=False)
        self.db.flush()
        if removed:
            logger.info(f"[MEMBERSHIP] Removed user {user_id} from community {community.id}")
        return bool(removed)

    # --- ally graph -----------------------------------------------------

    def _ally_edge(self, a: uuid.UUID, b: uuid.UUID):
        low, high = Ally.ordered_pair(a, b)
        return self.db.query(Ally).filter(
            Ally.user_low_id == low,
            Ally.user_high_id == high
        ).first()

    def are_allies(self, a: uuid.UUID, b: uuid.UUID) -> bool:
        return self._ally_edge(a, b) is not None

    def allies_of(self, user_id: uuid.UUID) -> List[Ally]:
        return self.db.query(Ally).filter(
            or_(Ally.user_low_id == user_id, Ally.user_high_id == user_id)
        ).order_by(Ally.created_at.desc()).all()

    def make_allies(self, user_id: uuid.UUID, community: Community) -> int:
        """Create an edge between user and every other current member."""
        created = 0
        for member_id in self.member_ids(community):
            if member_id == user_id:
                continue
            if self._ally_edge(user_id, member_id) is None:
                low, high = Ally.ordered_pair(user_id, member_id)
                self.db.add(Ally(user_low_id=low, user_high_id=high))
                created += 1
        self.db.flush()
        logger.info(f"[MEMBERSHIP] make_allies for user {user_id} in community {community.id}: {created} created")
        return created

    def _community_ids_for(self, user_id: uuid.UUID) -> Set[uuid.UUID]:
        joined = self.db.query(CommunityMember.community_id).filter(
            CommunityMember.user_id == user_id
        ).all()
        created = self.db.query(Community.id).filter(Community.creator_id == user_id).all()
        return {row[0] for row in joined} | {row[0] for row in created}

    def share_other_community(self, a: uuid.UUID, b: uuid.UUID, exclude_community_id: uuid.UUID) -> bool:
        shared = self._community_ids_for(a) & self._community_ids_for(b)
        shared.discard(exclude_community_id)
        return bool(shared)

    def prune_allies(self, user_id: uuid.UUID, community: Community, former_members: Set[uuid.UUID]) -> int:
        """
        Drop edges between user and each former co-member of community unless
        they still share another community.
        """
        removed = 0
        for member_id in former_members:
            if member_id == user_id:
                continue
            if self.share_other_community(user_id, member_id, community.id):
                continue
            low, high = Ally.ordered_pair(user_id, member_id)
            removed += self.db.query(Ally).filter(
                and_(Ally.user_low_id == low, Ally.user_high_id == high)
            ).delete(synchronize_session=False)
        self.db.flush()
        logger.info(f"[MEMBERSHIP] prune_allies for user {user_id} leaving community {community.id}: {removed} removed")
        return removed

    # --- combined operations ----------------------------------------------

    def join(self, user_id: uuid.UUID, community: Community) -> bool:
        added = self.add_member(user_id, community)
        self.make_allies(user_id, community)
        return added

    def leave(self, user_id: uuid.UUID, community: Community) -> bool:
        former_members = self.member_ids(community)
        removed = self.remove_member(user_id, community)
        self.prune_allies(user_id, community, former_members)
        return removed
