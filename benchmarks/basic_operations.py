import time
from argparse import ArgumentParser
from functools import wraps

import respline


def parse_args():
    parser = ArgumentParser()
    parser.add_argument(
        "-n", type=int, help="Total number of requests (default 100000)", default=100000
    )
    parser.add_argument(
        "-P",
        type=int,
        help="Keep <numreq> replies outstanding. Default 1 (no pipelining).",
        default=1,
    )
    parser.add_argument(
        "-s", type=int, help="Data size of SET/GET value in bytes (default 2)", default=2
    )
    parser.add_argument(
        "--url", help="Redis URL (default redis://localhost:6379/0)",
        default="redis://localhost:6379/0",
    )

    args = parser.parse_args()
    return args


def run():
    args = parse_args()
    r = respline.Redis.from_url(args.url)
    r.flushdb()
    set_str(r, num=args.n, pipeline_size=args.P, data_size=args.s)
    get_str(r, num=args.n, pipeline_size=args.P, data_size=args.s)
    incr(r, num=args.n, pipeline_size=args.P, data_size=args.s)
    lpush(r, num=args.n, pipeline_size=args.P, data_size=args.s)
    pipeline_set(r, num=args.n, pipeline_size=args.P, data_size=args.s)
    r.close()


def timer(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.monotonic()
        ret = func(*args, **kwargs)
        duration = time.monotonic() - start
        count = kwargs["num"]
        print(f"{func.__name__} - {count} Requests")
        print(f"Duration  = {duration}")
        print(f"Rate = {count / duration}")
        print()
        return ret

    return wrapper


def ignore(reply, error):
    if error is not None:
        raise error


def issue(conn, pipeline_size, *args):
    """
    Issue one command. With pipelining, keep at most ``pipeline_size``
    replies outstanding.
    """
    if pipeline_size <= 1:
        return conn.execute_command(*args)
    conn.execute_command(*args, callback=ignore)
    if len(conn) >= pipeline_size:
        conn.wait_one_response()


@timer
def set_str(conn, num, pipeline_size, data_size):
    set_data = "a".ljust(data_size, "0")
    for i in range(num):
        issue(conn, pipeline_size, "SET", f"set_str:{i}", set_data)
    conn.wait_all_responses()


@timer
def get_str(conn, num, pipeline_size, data_size):
    for i in range(num):
        issue(conn, pipeline_size, "GET", f"set_str:{i}")
    conn.wait_all_responses()


@timer
def incr(conn, num, pipeline_size, data_size):
    for i in range(num):
        issue(conn, pipeline_size, "INCR", "incr_key")
    conn.wait_all_responses()


@timer
def lpush(conn, num, pipeline_size, data_size):
    set_data = 10 ** (data_size - 1)
    for i in range(num):
        issue(conn, pipeline_size, "LPUSH", "lpush_key", set_data)
    conn.wait_all_responses()


@timer
def pipeline_set(conn, num, pipeline_size, data_size):
    set_data = "a".ljust(data_size, "0")
    pipe = conn.pipeline(transaction=False)
    for i in range(num):
        pipe.set(f"pipeline_set:{i}", set_data)
        if len(pipe) >= max(pipeline_size, 1):
            pipe.execute()
    pipe.execute()


if __name__ == "__main__":
    run()
