from lrgraph.utils.resources import RESOURCES, Resources, jit


class TestResources:
    def test_pool_shared(self):
        assert RESOURCES.pool is RESOURCES.pool
        assert RESOURCES.pool.submit(sum, [1, 2, 3]).result() == 6

    def test_threads_from_environment(self, monkeypatch):
        monkeypatch.setenv('LRGRAPH_THREADS', '3')
        resources = Resources()
        assert resources.max_workers == 3
        assert resources.pool._max_workers == 3
        resources.shutdown()

    def test_shutdown_starts_fresh_pool(self):
        resources = Resources()
        pool = resources.pool
        resources.shutdown()
        assert resources.pool is not pool
        assert resources.pool.submit(len, 'ACGT').result() == 4
        resources.shutdown()

    def test_has_module(self):
        assert Resources.has_module('numpy')
        assert not Resources.has_module('lrgraph_no_such_module')


class TestJit:
    def test_kernel_runs(self):
        @jit(nopython=True, cache=False, nogil=True)
        def _add_kernel(a, b):
            return a + b

        assert _add_kernel(2, 3) == 5

    def test_bare(self):
        @jit
        def _double_kernel(x):
            return 2 * x

        assert _double_kernel(4) == 8
