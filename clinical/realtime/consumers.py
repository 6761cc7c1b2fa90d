import json
from channels.generic.websocket import AsyncWebsocketConsumer

from clinical.services.notifications import LAB, PHARMACY, UPDATES_GROUP, worklist_group

ROLE_QUEUES = {
    "pharmacist": (PHARMACY,),
    "lab_tech": (LAB,),
    "admin": (PHARMACY, LAB),
}


class UpdatesConsumer(AsyncWebsocketConsumer):
    GROUP = UPDATES_GROUP

    async def connect(self):
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def broadcast_refresh(self, event):
        # event: {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        await self.send(json.dumps(event))


class WorklistConsumer(AsyncWebsocketConsumer):
    """Pushes new pending prescriptions / lab orders to the desk that works them."""

    async def connect(self):
        user = self.scope.get("user")
        queues = ROLE_QUEUES.get(getattr(user, "role", None), ()) if user and user.is_authenticated else ()
        if not queues:
            await self.close(code=4403)
            return
        self.groups_joined = [worklist_group(q) for q in queues]
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "queues": list(queues)}))

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def worklist_pending(self, event):
        # event: {"type": "worklist.pending", "queue": ..., "patientId": ..., "recordId": ..., "itemIds": [...]}
        await self.send(json.dumps(event))
