"""Gamification persistence: the boundary where models become store documents"""
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from src.db.document_store import DocumentStore, WriteOperation
from src.exceptions import GamificationError, RecordNotFoundError, wrap_store_exception
from src.models.gamification import BadgeProgress, UserGamificationProfile

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
BADGE_DEFINITIONS_COLLECTION = "badges/definitions"


def progress_collection(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/progress"


def activities_collection(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/activities"


class GamificationRepository:
    """
    Reads and writes profiles and badge progress.

    Progress documents are only ever written in the same batch as a
    version-checked profile write, so the profile version guards them too.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def find_profile(self, user_id: str) -> Optional[UserGamificationProfile]:
        """Profile with its store version, or None"""
        try:
            document = await self.store.get(USERS_COLLECTION, user_id)
        except GamificationError:
            raise
        except Exception as e:
            raise wrap_store_exception(e, operation="get_profile", user_id=user_id)

        if document is None:
            return None

        try:
            profile = UserGamificationProfile.model_validate(document.data)
        except PydanticValidationError as e:
            raise wrap_store_exception(
                e, operation="get_profile", user_id=user_id,
                context={"document": f"{USERS_COLLECTION}/{user_id}"},
            )
        return profile.model_copy(update={"version": document.version})

    async def get_profile(self, user_id: str) -> UserGamificationProfile:
        """
        Profile with its store version

        Raises:
            RecordNotFoundError: no profile for user_id
        """
        profile = await self.find_profile(user_id)
        if profile is None:
            raise RecordNotFoundError(
                message=f"Gamification profile for user {user_id} not found",
                record_type="UserGamificationProfile",
                record_id=user_id,
                user_id=user_id,
            )
        return profile

    async def get_badge_progress(self, user_id: str) -> dict[str, BadgeProgress]:
        """All progress counters of a user by badge id"""
        try:
            documents = await self.store.list_documents(progress_collection(user_id))
        except GamificationError:
            raise
        except Exception as e:
            raise wrap_store_exception(e, operation="get_badge_progress", user_id=user_id)

        try:
            return {
                badge_id: BadgeProgress.model_validate(document.data)
                for badge_id, document in documents.items()
            }
        except PydanticValidationError as e:
            raise wrap_store_exception(
                e, operation="get_badge_progress", user_id=user_id,
                context={"collection": progress_collection(user_id)},
            )

    async def list_user_ids(self) -> list[str]:
        documents = await self.store.list_documents(USERS_COLLECTION)
        return sorted(documents)

    @staticmethod
    def profile_write(
        profile: UserGamificationProfile,
        expected_version: Optional[int],
    ) -> WriteOperation:
        data = profile.model_dump(mode="json", exclude={"version"})
        return WriteOperation.set(USERS_COLLECTION, profile.user_id, data, expected_version)

    @staticmethod
    def progress_write(progress: BadgeProgress) -> WriteOperation:
        return WriteOperation.set(
            progress_collection(progress.user_id),
            progress.badge_id,
            progress.model_dump(mode="json"),
        )

    async def commit(self, writes: list[WriteOperation], operation: str, user_id: str) -> int:
        """
        Commit writes atomically

        Returns:
            New version of the user's profile document (0 if not written)
        """
        try:
            versions = await self.store.commit_batch(writes)
        except GamificationError:
            raise
        except Exception as e:
            raise wrap_store_exception(e, operation=operation, user_id=user_id)

        return versions.get((USERS_COLLECTION, user_id), 0)

    async def create_profile(self, profile: UserGamificationProfile) -> UserGamificationProfile:
        version = await self.commit(
            [self.profile_write(profile, expected_version=0)],
            operation="create_profile",
            user_id=profile.user_id,
        )
        logger.info(f"Created gamification profile for user {profile.user_id}")
        return profile.model_copy(update={"version": version})

    async def delete_profile(self, user_id: str, expected_version: int) -> None:
        """Delete the profile with its progress and activity feed documents in one batch"""
        writes = [WriteOperation.delete(USERS_COLLECTION, user_id, expected_version)]
        counts = {}
        for collection in (progress_collection(user_id), activities_collection(user_id)):
            try:
                documents = await self.store.list_documents(collection)
            except GamificationError:
                raise
            except Exception as e:
                raise wrap_store_exception(e, operation="delete_profile", user_id=user_id)
            counts[collection] = len(documents)
            writes.extend(WriteOperation.delete(collection, document_id) for document_id in documents)

        await self.commit(writes, operation="delete_profile", user_id=user_id)
        logger.info(
            f"Deleted gamification profile for user {user_id} "
            f"({counts[progress_collection(user_id)]} progress records, "
            f"{counts[activities_collection(user_id)]} activities)"
        )
