def register(sizeof):
    @sizeof.register_lazy("nhist")
    def lazy_register_nhist_Histogram():
        import dask

        from nhist.histogram import Histogram

        @sizeof.register(Histogram)
        def register_nhist_Histogram(data):
            size = dask.sizeof.sizeof(data.values(flow=True))
            if data.storage_type.has_variance:
                size += dask.sizeof.sizeof(data.variances(flow=True))
            return size
