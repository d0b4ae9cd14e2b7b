"""Worker modules.

- job: Job envelope, producer, Celery tasks and worker pool
- video: Video record model and status store
- transcoding: Media operations and pipeline executor
"""
