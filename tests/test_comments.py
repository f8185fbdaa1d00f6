import json

import pytest
import respx
from httpx import Response
from targetprocess_gateway.client import AuthConfig, TargetProcessClient
from targetprocess_gateway.core.errors import ValidationError
from targetprocess_gateway.models import Comment
from targetprocess_gateway.services.comments import (
    CommentService,
    sort_comments_hierarchically,
)
from targetprocess_gateway.services.validation import EntityTypeValidator

BASE = "https://acme.tpondemand.com/api/v1"


async def _no_sleep(_delay):
    return None


@pytest.fixture
def service():
    client = TargetProcessClient(
        auth=AuthConfig.basic("jane", "secret"),
        domain="acme.tpondemand.com",
        sleep=_no_sleep,
    )
    return CommentService(client, EntityTypeValidator())


def _comment(cid, date, parent=None, private=False):
    return {
        "Id": cid,
        "Description": f"comment {cid}",
        "CreateDate": date,
        "ParentId": parent,
        "IsPrivate": private,
    }


def test_hierarchical_sort_puts_replies_after_parents():
    comments = [
        Comment.model_validate(c)
        for c in [
            _comment(3, "2024-01-03T00:00:00", parent=1),
            _comment(2, "2024-01-02T00:00:00"),
            _comment(1, "2024-01-01T00:00:00"),
            _comment(4, "2024-01-01T12:00:00", parent=1),
            _comment(5, "2024-01-05T00:00:00", parent=99),
        ]
    ]
    ordered = [c.id for c in sort_comments_hierarchically(comments)]
    assert ordered == [1, 4, 3, 2, 5]


def test_hierarchical_sort_understands_legacy_dates():
    comments = [
        Comment.model_validate(_comment(1, "/Date(1700000100000+0000)/")),
        Comment.model_validate(_comment(2, "/Date(1700000000000+0000)/")),
    ]
    assert [c.id for c in sort_comments_hierarchically(comments)] == [2, 1]


@pytest.mark.asyncio
async def test_get_comments_uses_entity_endpoint(service):
    async with respx.mock:
        route = respx.get(f"{BASE}/UserStorys/42/Comments").mock(
            return_value=Response(
                200,
                json={
                    "Items": [
                        _comment(2, "2024-01-02T00:00:00", parent=1, private=True),
                        _comment(1, "2024-01-01T00:00:00"),
                    ]
                },
            )
        )
        async with service.client:
            comments = await service.get_comments("UserStory", 42)

    assert route.called
    assert [c.id for c in comments] == [1, 2]
    assert comments[1].is_private


@pytest.mark.asyncio
async def test_get_comments_rejects_unknown_type(service):
    with pytest.raises(ValidationError):
        await service.get_comments("Story", 42)


@pytest.mark.asyncio
async def test_create_comment_body(service):
    async with respx.mock:
        route = respx.post(f"{BASE}/Comments").mock(
            return_value=Response(200, json=_comment(10, "2024-01-01T00:00:00", parent=7))
        )
        async with service.client:
            created = await service.create_comment(
                42, "  Looks good  ", is_private=True, parent_comment_id=7
            )

    body = json.loads(route.calls[0].request.content)
    assert body == {
        "General": {"Id": 42},
        "Description": "Looks good",
        "IsPrivate": True,
        "ParentId": 7,
    }
    assert created.id == 10
    assert created.parent_id == 7


@pytest.mark.asyncio
async def test_create_comment_minimal_body(service):
    async with respx.mock:
        route = respx.post(f"{BASE}/Comments").mock(
            return_value=Response(200, json={"Id": 11, "Description": "hi"})
        )
        async with service.client:
            await service.create_comment(42, "hi")

    assert json.loads(route.calls[0].request.content) == {
        "General": {"Id": 42},
        "Description": "hi",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   "])
async def test_empty_description_is_rejected(service, text):
    with pytest.raises(ValidationError):
        await service.create_comment(42, text)


@pytest.mark.asyncio
async def test_bad_ids_are_rejected(service):
    with pytest.raises(ValidationError):
        await service.create_comment(0, "hi")
    with pytest.raises(ValidationError):
        await service.create_comment(1, "hi", parent_comment_id=-1)
    with pytest.raises(ValidationError):
        await service.delete_comment(0)


@pytest.mark.asyncio
async def test_update_and_delete(service):
    async with respx.mock:
        update = respx.post(f"{BASE}/Comments/5").mock(
            return_value=Response(200, json={"Id": 5, "Description": "edited"})
        )
        delete = respx.delete(f"{BASE}/Comments/5").mock(return_value=Response(200))
        async with service.client:
            updated = await service.update_comment(5, "edited")
            deleted = await service.delete_comment(5)

    assert json.loads(update.calls[0].request.content) == {"Description": "edited"}
    assert updated.description == "edited"
    assert deleted is True
    assert delete.call_count == 1


@pytest.mark.asyncio
async def test_replies_and_ownership(service):
    async with respx.mock:
        respx.get(f"{BASE}/Comments/1/Replies").mock(
            return_value=Response(200, json={"Items": [_comment(2, None, parent=1)]})
        )
        respx.get(f"{BASE}/Comments/1").mock(
            return_value=Response(
                200, json={"Id": 1, "General": {"Id": 42, "Name": "Login page"}}
            )
        )
        respx.get(f"{BASE}/Comments/404").mock(return_value=Response(400))
        async with service.client:
            replies = await service.get_comment_replies(1)
            on_42 = await service.is_comment_on_entity(1, 42)
            on_43 = await service.is_comment_on_entity(1, 43)
            missing = await service.is_comment_on_entity(404, 42)

    assert [r.id for r in replies] == [2]
    assert on_42 is True
    assert on_43 is False
    assert missing is False


@pytest.mark.asyncio
async def test_comment_stats(service):
    async with respx.mock:
        respx.get(f"{BASE}/Bugs/7/Comments").mock(
            return_value=Response(
                200,
                json={
                    "Items": [
                        _comment(1, "2024-01-01T00:00:00"),
                        _comment(2, "2024-01-02T00:00:00", private=True),
                        _comment(3, "2024-01-03T00:00:00", parent=1),
                    ]
                },
            )
        )
        async with service.client:
            stats = await service.get_comment_stats("Bug", 7)

    assert (stats.total, stats.public, stats.private, stats.replies) == (3, 2, 1, 1)
