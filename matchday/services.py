"""
Service wiring: one place that builds the store, feed, generator and
pipeline objects from Settings.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config.settings import Settings
from matchday.db import create_db_engine, create_session_factory, init_db
from matchday.generation import TextGenerator, get_text_generator
from matchday.live_match import (
    ChangeFeed,
    EventComposer,
    LiveFeedReader,
    LiveUpdatePublisher,
    LiveUpdateService,
    LoggingPushSink,
    NotificationDispatcher,
    PushSink,
    WebhookPushSink,
)

logger = logging.getLogger("services")


@dataclass
class LiveServices:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    feed: ChangeFeed
    generator: TextGenerator
    composer: EventComposer
    publisher: LiveUpdatePublisher
    reader: LiveFeedReader
    updates: LiveUpdateService
    dispatcher: NotificationDispatcher
    executor: Optional[ThreadPoolExecutor] = None

    def close(self):
        """Stop the feed, finish pending pushes, release the store."""
        self.feed.shutdown()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
        self.engine.dispose()
        logger.info("Live services shut down")


def _push_sink(settings: Settings) -> PushSink:
    if settings.push_webhook_url:
        return WebhookPushSink(settings.push_webhook_url, timeout=settings.push_timeout_seconds)
    return LoggingPushSink()


def build_services(
    settings: Settings,
    generator: Optional[TextGenerator] = None,
    push_sink: Optional[PushSink] = None,
    background_push: bool = True,
) -> LiveServices:
    """
    Build every pipeline object and create the schema.

    ``generator`` and ``push_sink`` override the configured ones (tests use
    this to avoid network calls). With ``background_push`` off, pushes are
    delivered on the publishing thread.
    """
    engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    init_db(engine)
    session_factory = create_session_factory(engine)

    feed = ChangeFeed(queue_size=settings.feed_queue_size)
    generator = generator or get_text_generator(settings)
    composer = EventComposer(generator)
    publisher = LiveUpdatePublisher(session_factory, feed)
    reader = LiveFeedReader(session_factory, feed)
    updates = LiveUpdateService(session_factory, composer, publisher, feed)

    executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="push") if background_push else None
    dispatcher = NotificationDispatcher(
        push_sink or _push_sink(settings),
        enabled=settings.push_notifications_enabled,
        executor=executor,
    )
    feed.add_listener(dispatcher.handle)

    logger.info(f"Live services ready (generator={generator.provider_name}, store={engine.url!r})")
    return LiveServices(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        feed=feed,
        generator=generator,
        composer=composer,
        publisher=publisher,
        reader=reader,
        updates=updates,
        dispatcher=dispatcher,
        executor=executor,
    )
