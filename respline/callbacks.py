"""
Reply post-processing table.

``MULTI_BULK_COMMANDS`` names the commands whose reply is an aggregate, so a
pending request knows to look inside it for embedded errors.
``RESPONSE_CALLBACKS`` maps a command name to the function that shapes its
decoded reply into the Python value handed to the caller.
"""

from respline.utils import str_if_bytes


def parse_info(response):
    """Parse the result of Redis's INFO command into a Python dict"""
    info = {}
    response = str_if_bytes(response)

    def get_value(value):
        if "," not in value or "=" not in value:
            try:
                if "." in value:
                    return float(value)
                else:
                    return int(value)
            except ValueError:
                return value
        else:
            sub_dict = {}
            for item in value.split(","):
                k, v = item.rsplit("=", 1)
                sub_dict[k] = get_value(v)
            return sub_dict

    for line in response.splitlines():
        if line and not line.startswith("#"):
            if line.find(":") != -1:
                # the value may contain ':' but 'cmdstat_host' is the only
                # key that does
                key, value = line.split(":", 1)
                if key == "cmdstat_host":
                    key, value = line.rsplit(":", 1)

                if key == "module":
                    # there can be several 'module' lines
                    info.setdefault("modules", []).append(get_value(value))
                else:
                    info[key] = get_value(value)
            else:
                # if the line isn't splittable, append it to the "__raw__" key
                info.setdefault("__raw__", []).append(line)

    return info


def pairs_to_dict(response, decode_keys=False, decode_string_values=False):
    """Create a dict given a list of key/value pairs"""
    if response is None:
        return {}
    if decode_keys or decode_string_values:
        keys = response[::2]
        if decode_keys:
            keys = map(str_if_bytes, keys)
        values = response[1::2]
        if decode_string_values:
            values = map(str_if_bytes, values)
        return dict(zip(keys, values))
    else:
        it = iter(response)
        return dict(zip(it, it))


def parse_config_get(response, **options):
    response = [str_if_bytes(i) if i is not None else None for i in response]
    return response and pairs_to_dict(response) or {}


def parse_scan(response, **options):
    cursor, r = response
    return int(cursor), r


def parse_hscan(response, **options):
    cursor, r = response
    return int(cursor), r and pairs_to_dict(r) or {}


def zset_score_pairs(response, **options):
    """
    If ``withscores`` is specified in the options, return the response as
    a list of (value, score) pairs
    """
    if not response or not options.get("withscores"):
        return response
    score_cast_func = options.get("score_cast_func", float)
    it = iter(response)
    return list(zip(it, map(score_cast_func, it)))


def float_or_none(response):
    if response is None:
        return None
    return float(response)


def parse_time(response, **options):
    seconds, microseconds = response
    return int(seconds), int(microseconds)


def parse_client_list(response, **options):
    clients = []
    for c in str_if_bytes(response).splitlines():
        # values may contain '=', only split on the first one
        clients.append(dict(pair.split("=", 1) for pair in c.split(" ")))
    return clients


MULTI_BULK_COMMANDS = frozenset(
    [
        "BLPOP",
        "BRPOP",
        "CONFIG GET",
        "EXEC",
        "HGETALL",
        "HKEYS",
        "HMGET",
        "HSCAN",
        "HVALS",
        "KEYS",
        "LRANGE",
        "MGET",
        "SCAN",
        "SDIFF",
        "SINTER",
        "SMEMBERS",
        "SORT",
        "SSCAN",
        "SUNION",
        "TIME",
        "ZRANGE",
        "ZRANGEBYSCORE",
        "ZREVRANGE",
        "ZREVRANGEBYSCORE",
        "ZSCAN",
    ]
)


RESPONSE_CALLBACKS = {
    "CLIENT LIST": parse_client_list,
    "CONFIG GET": parse_config_get,
    "HGETALL": lambda r, **options: r and pairs_to_dict(r) or {},
    "HSCAN": parse_hscan,
    "INFO": lambda r, **options: parse_info(r),
    "INCRBYFLOAT": lambda r, **options: float_or_none(r),
    "HINCRBYFLOAT": lambda r, **options: float_or_none(r),
    "SCAN": parse_scan,
    "SSCAN": parse_scan,
    "TIME": parse_time,
    "ZINCRBY": lambda r, **options: float_or_none(r),
    "ZRANGE": zset_score_pairs,
    "ZRANGEBYSCORE": zset_score_pairs,
    "ZREVRANGE": zset_score_pairs,
    "ZREVRANGEBYSCORE": zset_score_pairs,
    "ZSCAN": lambda r, **options: (int(r[0]), zset_score_pairs(r[1], withscores=True)),
    "ZSCORE": lambda r, **options: float_or_none(r),
}
