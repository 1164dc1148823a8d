"""qdfx._renorm
==============
Алгоритмы ренормализации: приведение набора перекрывающихся
частичных сумм к каноническому неперекрывающемуся expansion.

* renormalize_dd — свёртка (s, e) в каноническую пару [hi, lo]
* renorm — каскад quad-double: 4 или 5 слагаемых -> 4 компонента
* fast_two_sum_reduction / renormalize — извлечение k ведущих
  компонентов из произвольного «грязного» потока (используется для
  расширения нулями, понижения ранга и точного сложения quad-double)
* canonicalize — каноническая форма для expansion любого ранга
* settle_infinite — бесконечный ведущий результат без NaN-хвоста

Все функции принимают и возвращают `torch.float64` тензоры;
компоненты лежат в последнем измерении.
"""

from __future__ import annotations

from typing import List, Tuple

import torch

from ._core import quick_two_sum, two_sum

__all__ = [
    "renormalize_dd",
    "renorm",
    "fast_two_sum_reduction",
    "renormalize",
    "canonicalize",
    "settle_infinite",
]


def _assert_float64(t: torch.Tensor, name: str = "tensor") -> None:
    if t.dtype != torch.float64:
        raise TypeError(f"{name} must be torch.float64, got {t.dtype}")


def renormalize_dd(s: torch.Tensor, e: torch.Tensor) -> torch.Tensor:
    """Сворачивает ошибку `e` в каноническую пару `[..., 2]`.

    Требует `|s| >= |e|` (так всегда бывает после EFT-шага).
    """
    hi, lo = quick_two_sum(s, e)
    return torch.stack((hi, lo), dim=-1)


_MAX_SWEEPS = 4


def _sweep(out: torch.Tensor) -> torch.Tensor:
    parts = list(out.unbind(-1))
    for i in range(len(parts) - 1):
        parts[i], parts[i + 1] = quick_two_sum(parts[i], parts[i + 1])
    return torch.stack(parts, dim=-1)


def renorm(*terms: torch.Tensor) -> torch.Tensor:
    """Каскад ренормализации quad-double.

    Принимает 4 или 5 частично перекрывающихся слагаемых в порядке
    убывания значимости и возвращает тензор `[..., 4]`.

    1. Проход снизу вверх цепочкой quick_two_sum сжимает слагаемые.
    2. Проход сверху вниз складывает очередное слагаемое в текущий
       слот; слот сдвигается только если ошибка ненулевая. Всё, что
       не поместилось, накапливается в четвёртом слоте.
    3. Проходы quick_two_sum сверху вниз, пока компоненты меняются:
       результат — неподвижная точка, повторный renorm его не меняет.

    Если ведущее слагаемое бесконечно, слагаемые возвращаются как есть.
    """
    if len(terms) not in (4, 5):
        raise ValueError(f"renorm expects 4 or 5 terms, got {len(terms)}")
    terms = torch.broadcast_tensors(*terms)
    for t in terms:
        _assert_float64(t, "renorm term")

    c: List[torch.Tensor] = list(terms)
    s = c[-1]
    for i in range(len(c) - 2, -1, -1):
        s, c[i + 1] = quick_two_sum(c[i], s)
    c[0] = s

    zero = torch.zeros_like(c[0])
    out = torch.stack((c[0], zero, zero, zero), dim=-1)
    slot = torch.zeros(c[0].shape, dtype=torch.long, device=c[0].device)
    for t in c[1:]:
        idx = slot.unsqueeze(-1)
        cur = out.gather(-1, idx).squeeze(-1)
        head, err = quick_two_sum(cur, t)
        last = slot == 3
        head = torch.where(last, cur + t, head)
        out = out.scatter(-1, idx, head.unsqueeze(-1))
        advance = (err != 0) & ~last
        nxt = (slot + 1).clamp(max=3).unsqueeze(-1)
        out = torch.where(advance.unsqueeze(-1), out.scatter(-1, nxt, err.unsqueeze(-1)), out)
        slot = slot + advance.long()

    for _ in range(_MAX_SWEEPS):
        swept = _sweep(out)
        if torch.equal(swept, out):
            break
        out = swept

    raw = torch.stack(terms[:4], dim=-1)
    return torch.where(torch.isinf(terms[0]).unsqueeze(-1), raw, out)


def fast_two_sum_reduction(tensor: torch.Tensor, dim: int = -1) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Точно суммирует тензор по измерению `dim` в голову (head) и хвост
    (tail) из точных ошибок каскадным попарным two_sum.
    """
    if dim < 0:
        dim += tensor.ndim

    s_stream = tensor
    e_stream_parts = []

    while s_stream.shape[dim] > 1:
        m = s_stream.shape[dim]
        n_pairs = m // 2

        even = s_stream.narrow(dim, 0, 2 * n_pairs).unflatten(dim, (n_pairs, 2))
        s_i, e_i = two_sum(even.select(dim + 1, 0), even.select(dim + 1, 1))

        # Нечётный последний элемент проходит на следующий уровень как есть
        parts = [s_i]
        if m % 2 == 1:
            parts.append(s_stream.narrow(dim, m - 1, 1))
        s_stream = torch.cat(parts, dim=dim)
        e_stream_parts.append(e_i)

    head = s_stream.squeeze(dim)
    if e_stream_parts:
        tail = torch.cat(e_stream_parts, dim=dim)
    else:
        tail_shape = list(tensor.shape)
        tail_shape[dim] = 0
        tail = tensor.new_empty(tail_shape)
    return head, tail


def renormalize(tensor: torch.Tensor, k: int, dim: int = -1) -> torch.Tensor:
    """
    Строит k-компонентное представление из «грязного» потока.

    Если компонентов не больше k, поток дополняется нулями — это и есть
    расширение нулями при повышении ранга (младшие биты не появляются).
    Иначе k-1 ведущих компонентов извлекаются точно, а последний равен
    (округлённой) сумме оставшихся ошибок.
    """
    _assert_float64(tensor)
    if dim < 0:
        dim += tensor.ndim

    n = tensor.shape[dim]
    if n <= k:
        if n == k:
            return tensor
        pad_shape = list(tensor.shape)
        pad_shape[dim] = k - n
        return torch.cat([tensor, tensor.new_zeros(pad_shape)], dim=dim)

    dirty = tensor
    clean = []
    for _ in range(k - 1):
        head, dirty = fast_two_sum_reduction(dirty, dim=dim)
        clean.append(head)
    # Единственное место, где вносится ошибка усечения
    clean.append(torch.sum(dirty, dim=dim))
    return torch.stack(clean, dim=dim)


def canonicalize(components: torch.Tensor) -> torch.Tensor:
    """Приводит `[..., 2]` или `[..., 4]` к неперекрывающейся форме."""
    k = components.shape[-1]
    if k == 2:
        hi, lo = two_sum(components[..., 0], components[..., 1])
        return torch.stack((hi, lo), dim=-1)
    if k == 4:
        return renorm(*components.unbind(-1))
    raise ValueError(f"Unsupported component count: {k}")


def settle_infinite(result: torch.Tensor, leading: torch.Tensor) -> torch.Tensor:
    """Там, где ведущая оценка бесконечна, результат — `(±inf, 0, ...)`."""
    k = result.shape[-1]
    inf = torch.isinf(leading)
    if not bool(inf.any()):
        return result
    settled = renormalize(leading.unsqueeze(-1), k)
    return torch.where(inf.unsqueeze(-1), settled, result)
