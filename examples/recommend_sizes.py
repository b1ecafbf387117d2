"""
Simple example script for fftadvisor
"""

# Add the src directory to the Python path
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import time

def main():
    import fftadvisor

    # An awkward 2D size: 1000 = 2^3 * 5^3 is fine, 1001 = 7 * 11 * 13 is not
    print("Searching sizes near 1001x1001...")
    start = time.time()
    results = fftadvisor.recommend(1001, 1001, max_perc_increase=10, max_mem_mb=4096, n_best=5)
    print(f"Search took {time.time() - start:.4f} seconds")
    for t in results:
        print(f"  {t.describe()}")

    # A batched 3D volume, cropping is allowed
    print("\nSearching cube sizes near 100^3, up to 37 volumes in a batch...")
    results = fftadvisor.recommend(100, 100, 100, N=37, is_batched=True, is_float=True,
                                   square_only=True, crop=True, max_perc_increase=20,
                                   max_mem_mb=1024, n_best=5)
    for t in results:
        print(f"  {t.describe()}")

    print("\nDone!")

if __name__ == "__main__":
    main()
