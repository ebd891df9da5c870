from ledger.model.job import (
    QueueName,
    SearchIndexJob,
    EmailJob,
    FileUploadJob,
    CleanupJob,
    JOB_NAMES,
    validate_job_name,
    JobState,
    JobOptions,
    RepeatOptions,
    Job,
    RepeatSchedule,
)
from ledger.model.queue import (
    RateLimit,
    RetentionPolicy,
    QueueConfig,
    DEFAULT_QUEUE_CONFIGS,
    load_queue_configs,
)
