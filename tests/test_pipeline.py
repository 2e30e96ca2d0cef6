import pytest
from respline.exceptions import ExecAbortError, RedisError, ResponseError, WatchError

from .resp import NULL_ARRAY, ErrorStr, encode

WRONGTYPE = ErrorStr(
    "WRONGTYPE", "Operation against a key holding the wrong kind of value"
)


class TestPipeline:
    def test_pipeline_is_true(self, client):
        "Ensure pipeline instances are not false-y"
        with client.pipeline() as pipe:
            assert pipe
            assert len(pipe) == 0

    def test_pipeline(self, client, mock_socket):
        mock_socket.feed(
            encode("OK", "QUEUED", "QUEUED", "QUEUED", ["OK", b"a1", b"2"])
        )
        with client.pipeline() as pipe:
            pipe.set("a", "a1").get("a").zincrby("z", 1, "z1")
            assert pipe.execute() == ["OK", "a1", 2.0]
        assert mock_socket.written.startswith(b"*1\r\n$5\r\nMULTI\r\n")
        assert mock_socket.written.endswith(b"*1\r\n$4\r\nEXEC\r\n")
        assert len(client) == 0
        assert not client.in_transaction

    def test_pipeline_single_write(self, client, mock_socket):
        mock_socket.feed(encode("OK", "OK", "OK"))
        with client.pipeline(transaction=False) as pipe:
            pipe.set("a", "a1").set("b", "b1").set("c", "c1")
            pipe.execute()
        assert len(mock_socket.sent) == 1

    def test_pipeline_length(self, client, mock_socket):
        mock_socket.feed(encode("OK", "OK", "OK"))
        with client.pipeline(transaction=False) as pipe:
            # Initially empty.
            assert len(pipe) == 0

            pipe.set("a", "a1").set("b", "b1").set("c", "c1")
            assert len(pipe) == 3
            # nothing is sent before execute()
            assert mock_socket.written == b""

            # Execute calls reset(), so empty once again.
            pipe.execute()
            assert len(pipe) == 0

    def test_pipeline_no_transaction(self, client, mock_socket):
        mock_socket.feed(encode("OK", b"a1", 3))
        with client.pipeline(transaction=False) as pipe:
            pipe.set("a", "a1").get("a").incr("n")
            assert pipe.execute() == ["OK", "a1", 3]
        assert b"MULTI" not in mock_socket.written

    def test_empty_pipeline(self, client, mock_socket):
        with client.pipeline() as pipe:
            assert pipe.execute() == []
        assert mock_socket.written == b""

    def test_exec_error_raised(self, client, mock_socket):
        mock_socket.feed(encode("OK", "QUEUED", "QUEUED", [1, WRONGTYPE]))
        with client.pipeline() as pipe:
            pipe.incr("a").lpush("a", "x")
            with pytest.raises(ResponseError) as ex:
                pipe.execute()
            assert str(ex.value).startswith("[exec] Command # 2 (LPUSH a x) of ")
            assert "WRONGTYPE" in str(ex.value)
            # pipeline is reset after an error
            assert len(pipe) == 0

    def test_exec_error_returned(self, client, mock_socket):
        mock_socket.feed(encode("OK", "QUEUED", "QUEUED", [1, WRONGTYPE]))
        with client.pipeline() as pipe:
            pipe.incr("a").lpush("a", "x")
            result = pipe.execute(raise_on_error=False)
            assert result[0] == 1
            assert isinstance(result[1], ResponseError)

    def test_pipeline_error_raised(self, client, mock_socket):
        mock_socket.feed(encode("OK", WRONGTYPE, b"c1"))
        with client.pipeline(transaction=False) as pipe:
            pipe.set("a", "1").lpush("b", "x").get("c")
            with pytest.raises(ResponseError) as ex:
                pipe.execute()
            assert "Command # 2 (LPUSH b x) of pipeline caused error" in str(
                ex.value
            )
        # every reply was consumed even though one failed
        assert len(client) == 0

    def test_pipeline_error_returned(self, client, mock_socket):
        mock_socket.feed(encode("OK", WRONGTYPE, b"c1"))
        with client.pipeline(transaction=False) as pipe:
            pipe.set("a", "1").lpush("b", "x").get("c")
            result = pipe.execute(raise_on_error=False)
        assert result[0] == "OK"
        assert isinstance(result[1], ResponseError)
        assert result[2] == "c1"

    def test_exec_abort(self, client, mock_socket):
        mock_socket.feed(
            encode(
                "OK",
                ErrorStr("ERR", "wrong number of arguments for 'set' command"),
                ErrorStr(
                    "EXECABORT", "Transaction discarded because of previous errors."
                ),
            )
        )
        with client.pipeline() as pipe:
            pipe.set("a")
            with pytest.raises(ExecAbortError) as ex:
                pipe.execute()
        assert "Command # 1 (SET a)" in str(ex.value)
        assert not client.in_transaction

    def test_watch_failure(self, client, mock_socket):
        mock_socket.feed(encode("OK", "OK", "QUEUED") + NULL_ARRAY)
        client.watch("a")
        with client.pipeline() as pipe:
            pipe.set("a", "2")
            with pytest.raises(WatchError):
                pipe.execute()

    def test_earlier_callbacks_fire_first(self, client, mock_socket):
        mock_socket.feed(encode(b"before", "OK", "QUEUED", ["OK"]))
        seen = []
        client.get("x", callback=lambda reply, error: seen.append(reply))
        with client.pipeline() as pipe:
            pipe.set("a", "1")
            assert pipe.execute() == ["OK"]
        assert seen == ["before"]

    def test_transaction_inside_multi(self, client, mock_socket):
        client.multi(callback=lambda reply, error: None)
        with client.pipeline() as pipe:
            pipe.set("a", "1")
            with pytest.raises(RedisError):
                pipe.execute()
        # only MULTI was sent
        assert mock_socket.written == b"*1\r\n$5\r\nMULTI\r\n"

    def test_reset(self, client):
        pipe = client.pipeline()
        pipe.set("a", "1").get("a")
        assert len(pipe) == 2
        pipe.reset()
        assert len(pipe) == 0

    def test_response_callback_options(self, client, mock_socket):
        mock_socket.feed(encode([b"a", b"1"]))
        with client.pipeline(transaction=False) as pipe:
            pipe.zrange("z", 0, -1, "WITHSCORES", withscores=True)
            assert pipe.execute() == [[("a", 1.0)]]
