"""sqlreflex - change-data-capture event log on a relational table.

Producers append typed events to an events table, usually inside their own
business transaction. Named consumers read them back in id order and keep a
durable, forward-only cursor per consumer, giving at-least-once delivery.

Example:
    from sqlreflex.persistence import CursorStore, EventLog, open_engine
    from sqlreflex.consumer import Consumer, ConsumerMetrics
    from sqlreflex.streaming import StreamLoop

    engine = open_engine(config.database)
    loop = StreamLoop(
        EventLog(engine, config.events),
        CursorStore(engine, config.cursors),
        Consumer("user-projection", handle, metrics=ConsumerMetrics()),
        config=config.loop,
    )
    await loop.run()
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
