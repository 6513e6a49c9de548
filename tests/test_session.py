import threading

from stepengine.config import RunConfig
from stepengine.session import BrowserSession, SessionPool


def _sessions_from_live_threads(pool, count):
    """Sessions taken by ``count`` threads that are all alive at the same time."""

    found = {}
    ready = threading.Barrier(count + 1)
    done = threading.Event()

    def work(index):
        found[index] = pool.current()
        ready.wait()
        done.wait()

    workers = [threading.Thread(target=work, args=(index,)) for index in range(count)]
    for worker in workers:
        worker.start()
    ready.wait()
    done.set()
    for worker in workers:
        worker.join()
    return [found[index] for index in range(count)]


def test_same_thread_gets_the_same_session():
    pool = SessionPool(RunConfig())

    first = pool.current()

    assert pool.current() is first
    assert len(pool) == 1
    assert not first.started


def test_each_thread_gets_its_own_session():
    pool = SessionPool(RunConfig())

    sessions = _sessions_from_live_threads(pool, 2) + [pool.current()]

    assert len({id(session) for session in sessions}) == 3
    assert len(pool) == 3


def test_release_closes_only_the_calling_threads_session(monkeypatch):
    closed = []
    monkeypatch.setattr(BrowserSession, "close", lambda self: closed.append(self))
    pool = SessionPool(RunConfig())
    [other] = _sessions_from_live_threads(pool, 1)
    mine = pool.current()

    pool.release()

    assert closed == [mine]
    assert len(pool) == 1
    assert other not in closed

    pool.release()

    assert closed == [mine]
