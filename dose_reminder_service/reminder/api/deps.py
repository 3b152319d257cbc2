from fastapi import Request
from reminder.services.container import ReminderServices

def get_services(request: Request) -> ReminderServices:
    return request.app.state.services
