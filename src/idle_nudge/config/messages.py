DEFAULT_IDLE_REMINDER_MESSAGES = [
    "Hey, the session is waiting for your input.",
    "Just a reminder: your agent finished and is waiting for you.",
    "Your coding session has been idle for a while. Take a look when you can.",
    "Still there? The assistant needs your response to continue.",
    "The task is paused until you reply.",
]

__all__ = ["DEFAULT_IDLE_REMINDER_MESSAGES"]
