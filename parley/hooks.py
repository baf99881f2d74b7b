"""
Parley hooks: pre/post-call subscriber lists for commands.

Every command, group and the Commands root owns one Hooks. A child's hooks are
forwarded to its parent's when it is attached, so subscribing on the root
observes every invocation in the tree.

Subscribers are called with the invocation context, in subscription order,
and may be plain functions or coroutine functions.
"""
import inspect


class Hooks:
    """
    Pre-call and post-call subscribers.

    Attributes
    - pre: subscribers run before a command's callback.
    - post: subscribers run after it returned.
    """

    __slots__ = ("pre", "post")

    def __init__(self):
        self.pre = []
        self.post = []

    def subscribe(self, *, pre=None, post=None):
        """
        Append `pre` and/or `post` subscribers.
        """
        for callback, subscribers in ((pre, self.pre), (post, self.post)):
            if callback is None:
                continue
            if not callable(callback):
                raise TypeError("subscribe() arguments must be callable")
            subscribers.append(callback)
        return self

    def unsubscribe(self, *, pre=None, post=None):
        """
        Remove previously subscribed callbacks; ValueError when not subscribed.
        """
        for callback, subscribers in ((pre, self.pre), (post, self.post)):
            if callback is not None:
                subscribers.remove(callback)
        return self

    def forward(self, other, /):
        """
        Re-emit every event of this Hooks on `other` (after this one's subscribers).
        """
        if not isinstance(other, Hooks):
            raise TypeError("forward() argument must be hooks")
        if other is self:
            raise ValueError("hooks can not be forwarded to themselves")
        return self.subscribe(pre=other.emit_pre, post=other.emit_post)

    async def _emit(self, subscribers, context):
        for callback in list(subscribers):
            if inspect.isawaitable(result := callback(context)):
                await result

    async def emit_pre(self, context, /):
        await self._emit(self.pre, context)

    async def emit_post(self, context, /):
        await self._emit(self.post, context)

    def __repr__(self):
        return f"Hooks(pre={len(self.pre)}, post={len(self.post)})"


__all__ = (
    "Hooks",
)
