from sftrigger.polling.poller import PagedFetcher, PollResult, PollWindow, WatermarkPoller, build_filters, poll

__all__ = ["PagedFetcher", "PollResult", "PollWindow", "WatermarkPoller", "build_filters", "poll"]
