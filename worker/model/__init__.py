from worker.model.handler import HandlerResult, JobContext, JobLoggerAdapter, dump_result
