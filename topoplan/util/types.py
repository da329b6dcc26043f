# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

from typing import Dict, List, Tuple


def to_list(arg: str) -> List[str]:
    conf = []
    if len(arg.strip()) == 0:
        return []
    for el in arg.split(","):
        conf.append(el.strip())
    return conf


def to_dict(arg: str) -> Dict[str, str]:
    """
    Parses the given ``arg`` string literal into a ``Dict[str, str]`` of
    key-value pairs delimited by ``"="`` (equals). The values may be a
    list literal where the list elements are delimited by ``","`` (comma)
    or ``";"`` (semi-colon). The same delimiters (``","`` and ``";"``) are used
    to specify multiple key-value pairs in the ``arg`` literal (see examples below).
    When values are lists, the last delimiter is used as kv-pair delimiter
    (e.g. ``transports=cuda_ipc,tcp,protocol=ucx``). Empty values of ``arg``
    returns an empty map.

    Note that values that encode list literals are returned as list literals
    NOT actual lists. The caller must further process each value in the returned
    map, to cast/decode the value literals as specific types.

    Examples:

    .. code-block:: python

     to_dict("") == {}

     to_dict("protocol=ucx") == {"protocol": "ucx"}

     to_dict("protocol=''") == {"protocol": ""}

     to_dict("transports=cuda_ipc,tcp") == {"transports": "cuda_ipc,tcp"}
     to_dict("transports=cuda_ipc;tcp") == {"transports": "cuda_ipc;tcp"}

     to_dict("transports=cuda_ipc,tcp,protocol=ucx") == {"transports": "cuda_ipc,tcp", "protocol": "ucx"}
     to_dict("transports=cuda_ipc;tcp;protocol=ucx") == {"transports": "cuda_ipc;tcp", "protocol": "ucx"}

    """

    def parse_val_key(vk: str) -> Tuple[str, str]:
        # ``vk`` is assumed to be in value<delim>key format
        delims = [",", ";"]
        idx = max([vk.rfind(d) for d in delims])
        if idx == -1 or idx == 0 or len(vk) == idx + 1:
            # no delimiter (hence cannot parse value-key pair from vk)
            # -- or -- missing val (starts with a delim)
            # -- or -- trailing delim, no key (e.g. "val1,val2,")
            raise ValueError(
                f"`{vk}` cannot be split into `val<delim>key` with delims={delims}"
            )
        else:
            return vk[0:idx].strip(), vk[idx + 1 :].strip()

    def to_val(val: str) -> str:
        return val if val != '""' and val != "''" else ""

    arg_map: Dict[str, str] = {}

    if not arg:
        return arg_map

    # split cfgs
    cfg_kv_delim = "="

    # ["transports", "cuda_ipc;tcp,protocol", "ucx"]
    split_arg = [
        s.strip() for s in arg.split(cfg_kv_delim) if s.strip()
    ]  # remove empty
    split_arg_len = len(split_arg)

    if split_arg_len < 2:  # no kv -> malformed str
        raise ValueError(f"`{arg}` does not have at least one `key=value` pair")

    # since we split on "=" so we end up with ["KEY1", "val1,KEY2", "val2,KEY_n", "val_n"]
    key = split_arg[0]  # first element is always a key
    # middle elements are value_{n}<delim>key_{n+1}
    for vk in split_arg[1 : split_arg_len - 1]:
        val, key_next = parse_val_key(vk)
        arg_map[key] = to_val(val)
        key = key_next
    val = split_arg[-1]  # last element is always a value
    arg_map[key] = to_val(val)
    return arg_map
