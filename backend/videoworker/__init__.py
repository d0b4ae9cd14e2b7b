"""Video Processing Worker.

Consumes video-processing jobs from a Redis-backed Celery queue and turns
each uploaded video into a duration-bounded 720p asset.

Modules:
    - core: Configuration, database, Celery, logging, metrics, storage roots
    - modules.job: Job envelope, producer, queue tasks, worker pool
    - modules.video: Video record and status store
    - modules.transcoding: Media operations and the pipeline executor
"""

__version__ = "0.1.0"
