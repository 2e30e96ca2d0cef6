from respline.queue import PendingQueue, PendingRequest


class TestPendingRequest:
    def test_deliver_sync(self):
        request = PendingRequest("GET", ("GET", "a"), {})
        assert not request.done
        request.deliver("bar")
        assert request.done
        assert request.reply == "bar"
        assert request.error is None

    def test_deliver_callback(self):
        seen = []
        request = PendingRequest(
            "GET", ("GET", "a"), {}, callback=lambda *args: seen.append(args)
        )
        error = ValueError("boom")
        request.deliver(None, error)
        assert seen == [(None, error)]
        assert request.done
        assert request.error is error

    def test_is_exec(self):
        request = PendingRequest("EXEC", ("EXEC",), {})
        assert not request.is_exec
        request.members = ()
        assert request.is_exec

    def test_repr(self):
        request = PendingRequest("SET", ("SET", "a", "1"), {}, in_transaction=True)
        assert repr(request) == "<PendingRequest(SET, transaction)>"


class TestPendingQueue:
    def test_fifo(self):
        queue = PendingQueue()
        assert not queue
        assert queue.peek() is None

        first = PendingRequest("SET", ("SET", "a", "1"), {})
        second = PendingRequest("GET", ("GET", "a"), {})
        queue.append(first)
        queue.append(second)
        assert len(queue) == 2
        assert list(queue) == [first, second]

        assert queue.peek() is first
        assert len(queue) == 2
        assert queue.popleft() is first
        assert queue.peek() is second

    def test_clear(self):
        queue = PendingQueue()
        for i in range(3):
            queue.append(PendingRequest("INCR", ("INCR", i), {}))
        assert queue.clear() == 3
        assert len(queue) == 0
        assert queue.clear() == 0
