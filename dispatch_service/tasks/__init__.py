"""Background tasks executed by taskiq workers.

Run a worker:
    taskiq worker dispatch_service.tasks.broker:broker

Run the scheduler for periodic tasks:
    taskiq scheduler dispatch_service.tasks.broker:scheduler
"""
