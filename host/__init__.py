from host.base import Activity, DialogTurn
from host.memory import BotSession, DialogInstance, InMemoryDialogHost, MemoryDialogTurn
