"""Tests for chat sessions, message threading and product queries."""

import pytest

from src.db.models import ChatRole, GenerationJob, JobType, Product
from src.errors import NotFoundError, ValidationError
from src.services.product_service import ProductService
from tests.helpers import OTHER_OWNER_ID, OWNER_ID


@pytest.fixture
async def products(session_factory, owner):
    async with session_factory() as session:
        parent = Product(owner_id=OWNER_ID, external_id="1", name="Mug", product_type="variable")
        other = Product(owner_id=OWNER_ID, external_id="2", name="Apron")
        session.add_all([parent, other])
        await session.flush()
        session.add(
            Product(
                owner_id=OWNER_ID,
                external_id="10",
                name="Mug - Red",
                product_type="variation",
                parent_id=parent.id,
            )
        )
        await session.commit()
    return parent, other


class TestSessions:

    async def test_create_bound_to_product(self, chat_service, products):
        parent, _ = products
        chat = await chat_service.create_session(OWNER_ID, product_id=parent.id)
        assert chat.product_id == parent.id
        assert chat.status == "active"

    async def test_cannot_bind_other_owners_product(self, chat_service, products, other_owner):
        parent, _ = products
        with pytest.raises(NotFoundError):
            await chat_service.create_session(OTHER_OWNER_ID, product_id=parent.id)

    async def test_list_is_most_recent_first(self, chat_service, owner):
        first = await chat_service.create_session(OWNER_ID, title="first")
        second = await chat_service.create_session(OWNER_ID, title="second")
        await chat_service.touch_session(first.id)

        ids = [s.id for s in await chat_service.list_sessions(OWNER_ID)]
        assert ids == [first.id, second.id]

    async def test_rename_and_archive(self, chat_service, chat_session):
        updated = await chat_service.update_session(
            OWNER_ID, chat_session.id, title="  New title ", archived=True
        )
        assert updated.title == "New title"
        assert updated.status == "archived"

    async def test_empty_title_is_rejected(self, chat_service, chat_session):
        with pytest.raises(ValidationError):
            await chat_service.update_session(OWNER_ID, chat_session.id, title="   ")

    async def test_other_owner_cannot_see_session(self, chat_service, chat_session, other_owner):
        with pytest.raises(NotFoundError):
            await chat_service.get_session(OTHER_OWNER_ID, chat_session.id)

    async def test_delete_cascades_to_messages_and_jobs(
        self, chat_service, chat_session, job_store, session_factory
    ):
        message = await chat_service.add_message(chat_session.id, ChatRole.user, content="hi")
        job = await job_store.create(
            JobType.generation,
            owner_id=OWNER_ID,
            session_id=chat_session.id,
            message_id=message.id,
            input={"prompt": "hi"},
        )

        await chat_service.delete_session(OWNER_ID, chat_session.id)

        async with session_factory() as session:
            assert await session.get(GenerationJob, job.id) is None
        with pytest.raises(NotFoundError):
            await chat_service.get_session(OWNER_ID, chat_session.id)


class TestMessages:

    async def test_messages_are_threaded_in_order(self, chat_service, chat_session):
        await chat_service.add_message(chat_session.id, ChatRole.user, content="one")
        await chat_service.add_message(chat_session.id, ChatRole.assistant, content="two")

        chat = await chat_service.get_session(OWNER_ID, chat_session.id, with_messages=True)

        assert [m.content for m in chat.messages] == ["one", "two"]

    async def test_media_url_and_data_are_exclusive(self, chat_service, chat_session):
        with pytest.raises(ValueError):
            await chat_service.add_message(
                chat_session.id,
                ChatRole.assistant,
                media_url="https://media.test/a.png",
                media_data="aGk=",
            )


class TestProducts:

    async def test_variations_are_hidden_by_default(self, session_factory, products):
        service = ProductService(session_factory)

        names = [p.name for p in await service.list_products(OWNER_ID)]
        assert names == ["Apron", "Mug"]

        everything = await service.list_products(OWNER_ID, include_variations=True)
        assert len(everything) == 3

    async def test_list_variations(self, session_factory, products):
        parent, other = products
        service = ProductService(session_factory)

        assert [v.name for v in await service.list_variations(OWNER_ID, parent.id)] == [
            "Mug - Red"
        ]
        assert await service.list_variations(OWNER_ID, other.id) == []

    async def test_products_are_owner_scoped(self, session_factory, products, other_owner):
        parent, _ = products
        service = ProductService(session_factory)

        assert await service.list_products(OTHER_OWNER_ID) == []
        with pytest.raises(NotFoundError):
            await service.get_product(OTHER_OWNER_ID, parent.id)
