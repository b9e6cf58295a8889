"""
Discourse Adapter

Architectural Intent:
- Implements ForumPort against the Discourse HTTP API using httpx
- Only the two calls the orchestrator needs: version lookup and post creation
- A fresh client per call; API credentials are sent as Api-Key/Api-Username
  headers when configured

Design Decisions:
- Errors are raised as ForumApiError; callers decide whether they are fatal
- transport is injectable so tests can use httpx.MockTransport
"""

import logging
from typing import Optional

import httpx

from forumfleet.domain.entities.forum_instance import ForumInstance
from forumfleet.domain.errors import ForumApiError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def normalize_baseurl(baseurl: str) -> str:
    return baseurl.strip().rstrip("/")


class DiscourseAdapter:
    """ForumPort implementation for Discourse."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    def _client(self, instance: ForumInstance) -> httpx.AsyncClient:
        baseurl = normalize_baseurl(instance.baseurl)
        if not baseurl:
            raise ForumApiError(f"baseurl is required for {instance.name}")
        headers = {}
        if instance.has_api_credentials:
            headers["Api-Key"] = instance.apikey
            headers["Api-Username"] = instance.api_username
        return httpx.AsyncClient(
            base_url=baseurl,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch_version(self, instance: ForumInstance) -> Optional[str]:
        try:
            async with self._client(instance) as client:
                response = await client.get("/about.json")
        except httpx.HTTPError as e:
            raise ForumApiError(f"about.json request failed: {e}") from e
        if not response.is_success:
            raise ForumApiError(
                f"about.json request failed with {response.status_code}"
            )
        try:
            about = response.json().get("about") or {}
        except (ValueError, AttributeError) as e:
            raise ForumApiError(f"reading about.json: {e}") from e
        return about.get("version") or about.get("installed_version")

    async def create_post(
        self, instance: ForumInstance, topic_id: int, raw: str
    ) -> int:
        try:
            async with self._client(instance) as client:
                response = await client.post(
                    "/posts.json", data={"topic_id": str(topic_id), "raw": raw}
                )
        except httpx.HTTPError as e:
            raise ForumApiError(f"creating post: {e}") from e
        if not response.is_success:
            raise ForumApiError(
                f"create post failed with {response.status_code}: {response.text}"
            )
        try:
            post_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise ForumApiError(f"parsing create post response: {e}") from e
        logger.info("Created post %s in topic %s on %s", post_id, topic_id, instance.name)
        return int(post_id)
