from computationalFluids.GridSph.runner import main

main()
