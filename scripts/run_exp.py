"""
USPS in-painting experiment

add the flag "-F runs" to keep a file record of each run

quick example:
>> python scripts/run_exp.py with quick 'data_path=usps.mat'

plot saved results without running the sweep:
>> python scripts/run_exp.py with load
"""

import sacred

import gspbench as gb

ex = sacred.Experiment('usps_inpainting')

ex.config(gb.configs.usps)
ex.named_config(gb.configs.quick)
ex.named_config(gb.configs.load)

ex.main(gb.main)
ex.run_commandline()
